"""Fee structure schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class FeeStructureSet(BaseModel):
    class_id: UUID
    fee_head_id: UUID
    # Range checked in the service so negative amounts surface as validation_error
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    academic_year: str = Field(..., min_length=1, max_length=20, description='e.g. "2024" or "2024-2025"')


class FeeStructureResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    class_id: UUID
    fee_head_id: UUID
    fee_head_name: Optional[str] = None
    amount: Decimal
    academic_year: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
