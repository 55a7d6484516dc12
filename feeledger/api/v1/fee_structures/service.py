"""Fee structure service: per-class, per-year amounts for fee heads."""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core import directory
from feeledger.core.audit import log_fee_audit
from feeledger.core.enums import AuditAction
from feeledger.core.exceptions import ConflictError, ImmutableStateError, ValidationError
from feeledger.core.models import FeeHead, FeeStructure, InvoiceLine
from feeledger.core.money import format_amount, to_money
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import run_in_transaction

from .schemas import FeeStructureResponse, FeeStructureSet

logger = logging.getLogger(__name__)


def _fs_to_response(fs: FeeStructure, fee_head_name: Optional[str] = None) -> FeeStructureResponse:
    return FeeStructureResponse(
        id=fs.id,
        tenant_id=fs.tenant_id,
        class_id=fs.class_id,
        fee_head_id=fs.fee_head_id,
        fee_head_name=fee_head_name,
        amount=to_money(fs.amount),
        academic_year=fs.academic_year,
        is_active=fs.is_active,
        created_at=fs.created_at,
        updated_at=fs.updated_at,
    )


async def set_fee_structure(
    db: AsyncSession,
    ctx: TenantContext,
    payload: FeeStructureSet,
) -> FeeStructureResponse:
    """
    Upsert the amount for (tenant, class, fee head, academic year).

    A structure that an invoice line already references is frozen for that year;
    changing it raises ImmutableStateError. Setting the same amount again is a no-op.
    """
    ctx.authorize("fees", "update")
    amount = to_money(payload.amount)
    if amount < 0:
        raise ValidationError("Fee amount cannot be negative")
    academic_year = payload.academic_year.strip()
    if not academic_year:
        raise ValidationError("Academic year is required")
    key = ("fee_structure", ctx.tenant_id, payload.class_id, payload.fee_head_id, academic_year)

    async def _work() -> Tuple[FeeStructure, str]:
        fh = (
            await db.execute(
                select(FeeHead).where(
                    FeeHead.id == payload.fee_head_id,
                    FeeHead.tenant_id == ctx.tenant_id,
                )
            )
        ).scalar_one_or_none()
        if not fh or not fh.is_active:
            raise ValidationError("Fee head is missing or inactive")
        if await directory.get_class(db, ctx.tenant_id, payload.class_id) is None:
            raise ValidationError("Invalid class")

        fs = (
            await db.execute(
                select(FeeStructure)
                .where(
                    FeeStructure.tenant_id == ctx.tenant_id,
                    FeeStructure.class_id == payload.class_id,
                    FeeStructure.fee_head_id == payload.fee_head_id,
                    FeeStructure.academic_year == academic_year,
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()

        if fs is None:
            fs = FeeStructure(
                tenant_id=ctx.tenant_id,
                class_id=payload.class_id,
                fee_head_id=payload.fee_head_id,
                amount=amount,
                academic_year=academic_year,
                is_active=True,
            )
            db.add(fs)
            try:
                await db.flush()
            except IntegrityError:
                raise ConflictError("Fee structure was created concurrently; retry the request")
            await log_fee_audit(
                db, ctx.tenant_id, "fee_structures", fs.id,
                AuditAction.CREATE.value, None,
                {
                    "amount": format_amount(amount),
                    "class_id": str(payload.class_id),
                    "fee_head_id": str(payload.fee_head_id),
                    "academic_year": academic_year,
                },
                ctx.user_id,
            )
            return fs, fh.name

        old_amount = to_money(fs.amount)
        if old_amount == amount and fs.is_active:
            return fs, fh.name
        invoiced = (
            await db.execute(
                select(InvoiceLine.id).where(InvoiceLine.fee_structure_id == fs.id).limit(1)
            )
        ).scalar_one_or_none()
        if invoiced is not None:
            raise ImmutableStateError(
                f"Invoices for {academic_year} were already generated from this fee structure; "
                "set the amount for a later academic year instead"
            )
        fs.amount = amount
        fs.is_active = True
        await db.flush()
        await log_fee_audit(
            db, ctx.tenant_id, "fee_structures", fs.id,
            AuditAction.UPDATE.value,
            {"amount": format_amount(old_amount)},
            {"amount": format_amount(amount)},
            ctx.user_id,
        )
        return fs, fh.name

    fs, fee_head_name = await run_in_transaction(db, _work, lock_keys=[key])
    logger.info(
        f"Set fee structure {fs.id}: class {fs.class_id}, head {fs.fee_head_id}, "
        f"year {fs.academic_year}, amount {format_amount(fs.amount)}"
    )
    return _fs_to_response(fs, fee_head_name)


async def list_fee_structures(
    db: AsyncSession,
    ctx: TenantContext,
    academic_year: str,
    class_id: Optional[UUID] = None,
) -> List[FeeStructureResponse]:
    ctx.authorize("fees", "read")

    async def _work() -> List[FeeStructureResponse]:
        stmt = (
            select(FeeStructure, FeeHead.name.label("fee_head_name"))
            .join(FeeHead, FeeStructure.fee_head_id == FeeHead.id)
            .where(
                FeeStructure.tenant_id == ctx.tenant_id,
                FeeStructure.academic_year == academic_year.strip(),
                FeeStructure.is_active.is_(True),
            )
        )
        if class_id is not None:
            stmt = stmt.where(FeeStructure.class_id == class_id)
        stmt = stmt.order_by(FeeStructure.class_id, FeeHead.name)
        result = await db.execute(stmt)
        return [_fs_to_response(fs, fh_name) for fs, fh_name in result.all()]

    return await run_in_transaction(db, _work, readonly=True)
