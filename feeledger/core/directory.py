"""Read-only view of the student/class directory used by the ledger."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.models import FeeStructure, SchoolClass, Student


async def get_student(db: AsyncSession, tenant_id: UUID, student_id: UUID) -> Optional[Student]:
    """Active student of ``tenant_id`` or None."""
    result = await db.execute(
        select(Student).where(
            Student.id == student_id,
            Student.tenant_id == tenant_id,
            Student.is_active.is_(True),
        )
    )
    return result.scalar_one_or_none()


async def get_students(db: AsyncSession, tenant_id: UUID, student_ids: List[UUID]) -> List[Student]:
    if not student_ids:
        return []
    result = await db.execute(
        select(Student).where(
            Student.id.in_(student_ids),
            Student.tenant_id == tenant_id,
            Student.is_active.is_(True),
        )
    )
    return list(result.scalars().all())


async def get_class(db: AsyncSession, tenant_id: UUID, class_id: UUID) -> Optional[SchoolClass]:
    result = await db.execute(
        select(SchoolClass).where(
            SchoolClass.id == class_id,
            SchoolClass.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def get_class_fee_structures(
    db: AsyncSession,
    tenant_id: UUID,
    class_id: UUID,
    academic_year: str,
) -> List[FeeStructure]:
    """Active fee structures that apply to ``class_id`` for ``academic_year``."""
    result = await db.execute(
        select(FeeStructure)
        .where(
            FeeStructure.tenant_id == tenant_id,
            FeeStructure.class_id == class_id,
            FeeStructure.academic_year == academic_year,
            FeeStructure.is_active.is_(True),
        )
        .order_by(FeeStructure.created_at)
    )
    return list(result.scalars().all())
