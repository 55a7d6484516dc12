"""Reporting schemas."""

from decimal import Decimal
from typing import Dict
from uuid import UUID

from pydantic import BaseModel


class LedgerSummary(BaseModel):
    tenant_id: UUID
    pending_total: Decimal
    collected_total: Decimal
    invoice_counts: Dict[str, int]
