"""Payment transaction: a payer's claim against an invoice and its review outcome."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID

from feeledger.core.enums import TransactionStatus
from feeledger.db.session import Base


class PaymentTransaction(Base):
    """
    Submitted -> verified | rejected. Only verified rows count towards the invoice.
    A verified row is never modified again.
    """

    __tablename__ = "payment_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payment_transaction_amount_positive"),
        CheckConstraint(
            "status IN ('submitted','verified','rejected')",
            name="chk_payment_transaction_status",
        ),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school.invoices.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    student_id = Column(UUID(as_uuid=True), ForeignKey("school.students.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(30), nullable=False)  # manual-reference, cash
    external_reference = Column(String(100), nullable=True)  # e.g. bank UTR
    status = Column(String(20), nullable=False, default=TransactionStatus.submitted.value)
    submitted_by = Column(UUID(as_uuid=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    reviewed_by = Column(UUID(as_uuid=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
