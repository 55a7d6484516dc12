"""Invoices router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.dependencies import get_tenant_context
from feeledger.core.enums import InvoiceStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import get_db

from .schemas import (
    DiscountApply,
    GenerateInvoicesRequest,
    GenerateInvoicesResponse,
    InvoiceCancel,
    InvoiceResponse,
    OverdueSweepResponse,
    PaymentIntentResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/invoices", tags=["invoices"])


@router.post(
    "/generate",
    response_model=GenerateInvoicesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def generate_invoices(
    payload: GenerateInvoicesRequest,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> GenerateInvoicesResponse:
    try:
        return await service.generate_invoices(db, ctx, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/mark-overdue", response_model=OverdueSweepResponse)
async def mark_overdue_invoices(
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> OverdueSweepResponse:
    try:
        return await service.mark_overdue_invoices(db, ctx)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    student_id: Optional[UUID] = Query(None),
    academic_year: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> List[InvoiceResponse]:
    try:
        return await service.list_invoices(
            db,
            ctx,
            status_filter=status_filter.value if status_filter else None,
            student_id=student_id,
            academic_year=academic_year,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceResponse:
    try:
        return await service.get_invoice(db, ctx, invoice_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{invoice_id}/discount", response_model=InvoiceResponse)
async def apply_discount(
    invoice_id: UUID,
    payload: DiscountApply,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceResponse:
    try:
        return await service.apply_discount(db, ctx, invoice_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: UUID,
    payload: InvoiceCancel,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> InvoiceResponse:
    try:
        return await service.cancel_invoice(db, ctx, invoice_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get("/{invoice_id}/payment-intent", response_model=PaymentIntentResponse)
async def get_payment_intent(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> PaymentIntentResponse:
    try:
        return await service.get_payment_intent(db, ctx, invoice_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
