"""Payments router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_tenant_context
from feeledger.core.enums import TransactionStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import get_db

from .schemas import PaymentReject, PaymentSubmit, PaymentTransactionResponse
from . import service

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentTransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_payment(
    payload: PaymentSubmit,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentTransactionResponse:
    try:
        return await service.submit_payment(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("", response_model=List[PaymentTransactionResponse])
async def list_transactions(
    invoice_id: Optional[UUID] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[PaymentTransactionResponse]:
    try:
        return await service.list_transactions(
            db,
            ctx,
            invoice_id=invoice_id,
            status_filter=status_filter.value if status_filter else None,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{transaction_id}/verify", response_model=PaymentTransactionResponse)
async def verify_payment(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentTransactionResponse:
    try:
        return await service.verify_payment(db, ctx, transaction_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{transaction_id}/reject", response_model=PaymentTransactionResponse)
async def reject_payment(
    transaction_id: UUID,
    payload: PaymentReject,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentTransactionResponse:
    try:
        return await service.reject_payment(db, ctx, transaction_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
