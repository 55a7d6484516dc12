"""Fee head master (Tuition, Transport, Exam). Tenant-scoped."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID

from feeledger.db.session import Base


class FeeHead(Base):
    """Named charge category. Soft delete via is_active; structures keep referencing it."""

    __tablename__ = "fee_heads"
    __table_args__ = (
        # Name is unique per tenant among active heads only; deactivated names can be reused
        Index(
            "uq_fee_head_tenant_active_name",
            "tenant_id",
            "name_key",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        {"schema": "school"},
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("core.tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    # Case-folded name used for the uniqueness check
    name_key = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
