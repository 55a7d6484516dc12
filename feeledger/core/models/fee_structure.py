"""Fee structure: amount per fee head per class per academic year."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from feeledger.db.session import Base


class FeeStructure(Base):
    """
    Amount assigned to a fee head for a class and academic year.
    Frozen once an invoice line references it; later years get their own rows.
    """

    __tablename__ = "fee_structures"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "class_id",
            "fee_head_id",
            "academic_year",
            name="uq_fee_structure_tenant_class_head_year",
        ),
        CheckConstraint("amount >= 0", name="chk_fee_structure_amount_non_negative"),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(UUID(as_uuid=True), ForeignKey("core.classes.id", ondelete="CASCADE"), nullable=False)
    fee_head_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.fee_heads.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    academic_year = Column(String(20), nullable=False)  # e.g. "2024" or "2024-2025"
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
