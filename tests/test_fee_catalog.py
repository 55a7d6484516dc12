from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.api.v1.fee_heads import service as fee_heads_service
from feeledger.api.v1.fee_heads.schemas import FeeHeadCreate
from feeledger.api.v1.fee_structures import service as fee_structures_service
from feeledger.api.v1.fee_structures.schemas import FeeStructureSet
from feeledger.api.v1.invoices import service as invoices_service
from feeledger.api.v1.invoices.schemas import GenerateInvoicesRequest
from feeledger.core.enums import AuditAction, Role
from feeledger.core.exceptions import (
    ConflictError,
    ImmutableStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from feeledger.core.models import FeeAuditLog

from tests.helpers import ACADEMIC_YEAR, future_due_date, make_ctx


@pytest.mark.asyncio
async def test_create_fee_head_rejects_duplicate_active_name(db_session: AsyncSession, ctx) -> None:
    created = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Tuition"))
    assert created.name == "Tuition"
    assert created.is_active is True

    # Uniqueness ignores case and surrounding whitespace
    with pytest.raises(ConflictError):
        await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="  tuition "))


@pytest.mark.asyncio
async def test_deactivated_name_can_be_reused(db_session: AsyncSession, ctx) -> None:
    first = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Library"))
    deactivated = await fee_heads_service.deactivate_fee_head(db_session, ctx, first.id)
    assert deactivated.is_active is False

    second = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Library"))
    assert second.id != first.id

    active = await fee_heads_service.list_fee_heads(db_session, ctx)
    assert [fh.id for fh in active] == [second.id]
    everything = await fee_heads_service.list_fee_heads(db_session, ctx, active_only=False)
    assert {fh.id for fh in everything} == {first.id, second.id}


@pytest.mark.asyncio
async def test_deactivate_twice_is_not_found(db_session: AsyncSession, ctx) -> None:
    fh = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Exam"))
    await fee_heads_service.deactivate_fee_head(db_session, ctx, fh.id)
    with pytest.raises(NotFoundError):
        await fee_heads_service.deactivate_fee_head(db_session, ctx, fh.id)


@pytest.mark.asyncio
async def test_fee_heads_are_tenant_scoped(db_session: AsyncSession, ctx, other_school) -> None:
    await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Tuition"))
    other_ctx = make_ctx(other_school.tenant_id)

    # Same name is fine in another school, and neither sees the other's heads
    other = await fee_heads_service.create_fee_head(db_session, other_ctx, FeeHeadCreate(name="Tuition"))
    listed = await fee_heads_service.list_fee_heads(db_session, other_ctx)
    assert [fh.id for fh in listed] == [other.id]


@pytest.mark.asyncio
async def test_teacher_cannot_create_fee_head(db_session: AsyncSession, school) -> None:
    teacher = make_ctx(school.tenant_id, Role.TEACHER)
    with pytest.raises(PermissionDeniedError):
        await fee_heads_service.create_fee_head(db_session, teacher, FeeHeadCreate(name="Sports"))


@pytest.mark.asyncio
async def test_set_fee_structure_validates_input(db_session: AsyncSession, ctx, school) -> None:
    fh = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Tuition"))

    with pytest.raises(ValidationError):
        await fee_structures_service.set_fee_structure(
            db_session, ctx,
            FeeStructureSet(class_id=school.grade5.id, fee_head_id=fh.id, amount=Decimal("-1"), academic_year=ACADEMIC_YEAR),
        )
    with pytest.raises(ValidationError):
        await fee_structures_service.set_fee_structure(
            db_session, ctx,
            FeeStructureSet(class_id=uuid4(), fee_head_id=fh.id, amount=Decimal("100"), academic_year=ACADEMIC_YEAR),
        )

    await fee_heads_service.deactivate_fee_head(db_session, ctx, fh.id)
    with pytest.raises(ValidationError):
        await fee_structures_service.set_fee_structure(
            db_session, ctx,
            FeeStructureSet(class_id=school.grade5.id, fee_head_id=fh.id, amount=Decimal("100"), academic_year=ACADEMIC_YEAR),
        )


@pytest.mark.asyncio
async def test_set_fee_structure_upserts_and_audits(db_session: AsyncSession, ctx, school) -> None:
    fh = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Tuition"))
    payload = FeeStructureSet(
        class_id=school.grade5.id, fee_head_id=fh.id, amount=Decimal("4000"), academic_year=ACADEMIC_YEAR
    )
    created = await fee_structures_service.set_fee_structure(db_session, ctx, payload)
    assert created.amount == Decimal("4000.00")
    assert created.fee_head_name == "Tuition"

    # Same amount again: no new row, no audit entry
    again = await fee_structures_service.set_fee_structure(db_session, ctx, payload)
    assert again.id == created.id

    payload.amount = Decimal("4500")
    updated = await fee_structures_service.set_fee_structure(db_session, ctx, payload)
    assert updated.id == created.id
    assert updated.amount == Decimal("4500.00")

    actions = (
        await db_session.execute(
            select(FeeAuditLog.action_type)
            .where(FeeAuditLog.reference_id == created.id)
            .order_by(FeeAuditLog.created_at)
        )
    ).scalars().all()
    assert actions == [AuditAction.CREATE.value, AuditAction.UPDATE.value]

    listed = await fee_structures_service.list_fee_structures(db_session, ctx, ACADEMIC_YEAR)
    assert [(fs.fee_head_name, fs.amount) for fs in listed] == [("Tuition", Decimal("4500.00"))]


@pytest.mark.asyncio
async def test_invoiced_fee_structure_is_frozen(db_session: AsyncSession, ctx, school, catalog) -> None:
    await invoices_service.generate_invoices(
        db_session, ctx,
        GenerateInvoicesRequest(
            student_ids=[school.students[0].id],
            due_date=future_due_date(),
            academic_year=ACADEMIC_YEAR,
        ),
    )

    with pytest.raises(ImmutableStateError):
        await fee_structures_service.set_fee_structure(
            db_session, ctx,
            FeeStructureSet(
                class_id=school.grade5.id,
                fee_head_id=catalog.tuition.id,
                amount=Decimal("4200"),
                academic_year=ACADEMIC_YEAR,
            ),
        )

    # A later academic year gets its own structure
    next_year = await fee_structures_service.set_fee_structure(
        db_session, ctx,
        FeeStructureSet(
            class_id=school.grade5.id,
            fee_head_id=catalog.tuition.id,
            amount=Decimal("4200"),
            academic_year="2026-2027",
        ),
    )
    assert next_year.id != catalog.tuition_fs.id
    assert next_year.amount == Decimal("4200.00")
