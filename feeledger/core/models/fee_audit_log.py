"""Fee audit log: immutable financial change tracking for audit safety."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import JSONB, UUID

from feeledger.db.session import Base


class FeeAuditLog(Base):
    """Immutable audit trail for ledger changes. Written in the same transaction as the change."""

    __tablename__ = "fee_audit_logs"
    __table_args__ = {"schema": "school"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    reference_table = Column(String(50), nullable=False)
    reference_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    action_type = Column(String(30), nullable=False)  # CREATE, UPDATE, DEACTIVATE, VERIFY, REJECT, CANCEL, STATUS_CHANGE
    old_value = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    new_value = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    changed_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
