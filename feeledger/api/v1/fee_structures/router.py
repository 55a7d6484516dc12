"""Fee structures router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_tenant_context
from feeledger.core.exceptions import ServiceError
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import get_db

from .schemas import FeeStructureResponse, FeeStructureSet
from . import service

router = APIRouter(prefix="/api/v1/fee-structures", tags=["fee-structures"])


@router.put("", response_model=FeeStructureResponse)
async def set_fee_structure(
    payload: FeeStructureSet,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> FeeStructureResponse:
    try:
        return await service.set_fee_structure(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("", response_model=List[FeeStructureResponse])
async def list_fee_structures(
    academic_year: str,
    class_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[FeeStructureResponse]:
    try:
        return await service.list_fee_structures(db, ctx, academic_year, class_id=class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
