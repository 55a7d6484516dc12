"""Fee heads router."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_tenant_context
from feeledger.core.exceptions import ServiceError
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import get_db

from .schemas import FeeHeadCreate, FeeHeadResponse
from . import service

router = APIRouter(prefix="/api/v1/fee-heads", tags=["fee-heads"])


@router.post(
    "",
    response_model=FeeHeadResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_head(
    payload: FeeHeadCreate,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> FeeHeadResponse:
    try:
        return await service.create_fee_head(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("", response_model=List[FeeHeadResponse])
async def list_fee_heads(
    active_only: bool = Query(True, description="Return only active fee heads by default"),
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[FeeHeadResponse]:
    try:
        return await service.list_fee_heads(db, ctx, active_only=active_only)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete("/{fee_head_id}", response_model=FeeHeadResponse)
async def deactivate_fee_head(
    fee_head_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> FeeHeadResponse:
    try:
        return await service.deactivate_fee_head(db, ctx, fee_head_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
