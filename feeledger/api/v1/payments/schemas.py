"""Payment transaction schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from feeledger.core.enums import PaymentMethod, TransactionStatus


class PaymentSubmit(BaseModel):
    invoice_id: UUID
    # Sign checked in the service so a bad amount surfaces as validation_error
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    method: PaymentMethod = PaymentMethod.manual_reference
    external_reference: Optional[str] = Field(None, max_length=100)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v):
        # Older clients send manual_reference
        if isinstance(v, str):
            return v.strip().lower().replace("_", "-")
        return v


class PaymentReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PaymentTransactionResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    invoice_id: UUID
    student_id: UUID
    amount: Decimal
    method: PaymentMethod
    external_reference: Optional[str] = None
    status: TransactionStatus
    submitted_by: Optional[UUID] = None
    submitted_at: datetime
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True
