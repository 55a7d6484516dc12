"""Reports router."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_tenant_context
from feeledger.core.exceptions import ServiceError
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import get_read_db

from .schemas import LedgerSummary
from . import service

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


@router.get("/summary", response_model=LedgerSummary)
async def get_summary(
    tenant: Optional[UUID] = Query(None, description="Must match the caller's tenant when given"),
    db: AsyncSession = Depends(get_read_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> LedgerSummary:
    try:
        if tenant is not None:
            ctx.ensure_same_tenant(tenant)
        return await service.summarize(db, ctx)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
