"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from feeledger.core.enums import InvoiceStatus


class GenerateInvoicesRequest(BaseModel):
    student_ids: List[UUID]
    due_date: date
    academic_year: str = Field(..., min_length=1, max_length=20)


class InvoiceLineResponse(BaseModel):
    id: UUID
    fee_structure_id: UUID
    fee_head_id: UUID
    fee_head_name: str
    amount: Decimal

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    student_id: UUID
    invoice_number: str
    academic_year: str
    total_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    verified_amount: Decimal
    outstanding_amount: Decimal
    due_date: date
    status: InvoiceStatus
    cancellation_reason: Optional[str] = None
    lines: List[InvoiceLineResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class SkippedStudent(BaseModel):
    """Student left out of a batch; not an error."""

    student_id: UUID
    reason: str


class GenerateInvoicesResponse(BaseModel):
    invoices: List[InvoiceResponse]
    skipped: List[SkippedStudent]


class DiscountApply(BaseModel):
    # Range checked in the service so bad amounts surface as validation_error
    discount_amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=255)


class InvoiceCancel(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class OverdueSweepResponse(BaseModel):
    marked_overdue: int
    as_of: date


class PaymentIntentResponse(BaseModel):
    """What an external UI needs to render a payment request (e.g. a UPI QR code)."""

    invoice_id: UUID
    payable_to: str
    payee_name: str
    amount: Decimal
    reference: str
    payment_uri: str
