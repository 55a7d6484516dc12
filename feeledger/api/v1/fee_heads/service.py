"""Fee head service layer."""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.audit import log_fee_audit
from feeledger.core.enums import AuditAction
from feeledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from feeledger.core.models import FeeHead
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import run_in_transaction

from .schemas import FeeHeadCreate, FeeHeadResponse

logger = logging.getLogger(__name__)


def _to_response(fh: FeeHead) -> FeeHeadResponse:
    return FeeHeadResponse(
        id=fh.id,
        tenant_id=fh.tenant_id,
        name=fh.name,
        description=fh.description,
        is_active=fh.is_active,
        created_at=fh.created_at,
        updated_at=fh.updated_at,
    )


def _name_key(name: str) -> str:
    return " ".join(name.split()).casefold()


async def create_fee_head(
    db: AsyncSession,
    ctx: TenantContext,
    payload: FeeHeadCreate,
) -> FeeHeadResponse:
    ctx.authorize("fees", "create")
    name = " ".join(payload.name.split())
    if not name:
        raise ValidationError("Fee head name is required")
    name_key = _name_key(name)

    async def _work() -> FeeHead:
        existing = (
            await db.execute(
                select(FeeHead.id).where(
                    FeeHead.tenant_id == ctx.tenant_id,
                    FeeHead.name_key == name_key,
                    FeeHead.is_active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if existing:
            raise ConflictError(f"An active fee head named '{name}' already exists")
        fh = FeeHead(
            tenant_id=ctx.tenant_id,
            name=name,
            name_key=name_key,
            description=(payload.description or "").strip() or None,
            is_active=True,
        )
        db.add(fh)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent create of the same name
            raise ConflictError(f"An active fee head named '{name}' already exists")
        await log_fee_audit(
            db, ctx.tenant_id, "fee_heads", fh.id,
            AuditAction.CREATE.value, None, {"name": name}, ctx.user_id,
        )
        return fh

    fh = await run_in_transaction(db, _work)
    logger.info(f"Created fee head {fh.name} ({fh.id}) for tenant {ctx.tenant_id}")
    return _to_response(fh)


async def deactivate_fee_head(
    db: AsyncSession,
    ctx: TenantContext,
    fee_head_id: UUID,
) -> FeeHeadResponse:
    """Soft delete. Existing fee structures keep pointing at the head."""
    ctx.authorize("fees", "delete")

    async def _work() -> FeeHead:
        fh = (
            await db.execute(
                select(FeeHead).where(
                    FeeHead.id == fee_head_id,
                    FeeHead.tenant_id == ctx.tenant_id,
                )
            )
        ).scalar_one_or_none()
        if not fh or not fh.is_active:
            raise NotFoundError("Fee head not found")
        fh.is_active = False
        await log_fee_audit(
            db, ctx.tenant_id, "fee_heads", fh.id,
            AuditAction.DEACTIVATE.value, {"is_active": True}, {"is_active": False}, ctx.user_id,
        )
        await db.flush()
        return fh

    fh = await run_in_transaction(db, _work)
    logger.info(f"Deactivated fee head {fh.id} for tenant {ctx.tenant_id}")
    return _to_response(fh)


async def list_fee_heads(
    db: AsyncSession,
    ctx: TenantContext,
    active_only: bool = True,
) -> List[FeeHeadResponse]:
    ctx.authorize("fees", "read")

    async def _work() -> List[FeeHeadResponse]:
        stmt = select(FeeHead).where(FeeHead.tenant_id == ctx.tenant_id)
        if active_only:
            stmt = stmt.where(FeeHead.is_active.is_(True))
        stmt = stmt.order_by(FeeHead.name)
        result = await db.execute(stmt)
        return [_to_response(fh) for fh in result.scalars().all()]

    return await run_in_transaction(db, _work, readonly=True)
