"""Invoice: one student's bill for one academic year, with frozen fee lines."""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from feeledger.core.enums import InvoiceStatus
from feeledger.core.money import to_money
from feeledger.db.session import Base


class Invoice(Base):
    """
    net_amount is always total_amount - discount_amount and is only ever set by
    Invoice.recompute_net(). Never hard-deleted: cancelled is the tombstone.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint("discount_amount >= 0", name="chk_invoice_discount_non_negative"),
        CheckConstraint("discount_amount <= total_amount", name="chk_invoice_discount_le_total"),
        CheckConstraint(
            "status IN ('pending','partially_paid','paid','overdue','cancelled')",
            name="chk_invoice_status",
        ),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("school.students.id", ondelete="RESTRICT"), nullable=False, index=True)
    # Opaque, globally unique display/lookup key
    invoice_number = Column(String(40), nullable=False, unique=True)
    academic_year = Column(String(20), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=InvoiceStatus.pending.value)
    cancellation_reason = Column(Text, nullable=True)
    # Compare-and-swap counter; a stale UPDATE raises StaleDataError
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    lines = relationship(
        "InvoiceLine",
        back_populates="invoice",
        lazy="selectin",
        order_by="InvoiceLine.fee_head_name",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def recompute_net(self) -> None:
        total = to_money(self.total_amount)
        discount = to_money(self.discount_amount)
        self.total_amount = total
        self.discount_amount = discount
        self.net_amount = total - discount


class InvoiceLine(Base):
    """Snapshot of one fee structure's amount at generation time."""

    __tablename__ = "invoice_lines"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("school.invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_structure_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.fee_structures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    fee_head_id = Column(UUID(as_uuid=True), ForeignKey("school.fee_heads.id", ondelete="RESTRICT"), nullable=False)
    fee_head_name = Column(String(100), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    invoice = relationship("Invoice", back_populates="lines")


class InvoiceSequence(Base):
    """Per-tenant monotonically increasing counter feeding invoice numbers."""

    __tablename__ = "invoice_sequences"
    __table_args__ = {"schema": "school"}

    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
