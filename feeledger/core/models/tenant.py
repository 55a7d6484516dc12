import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID

from feeledger.core.enums import TenantStatus
from feeledger.db.session import Base


class Tenant(Base):
    """
    School account in the multi-tenant platform; the unit of data isolation.

    - tenant_id (id): Internal primary key (UUID). Used for all FKs and every ledger query.
    - organization_code: External/public human-readable identifier (e.g. SCH-A3K9).
    - payee_vpa: UPI address that payment intents for this school's invoices point at.
    """

    __tablename__ = "tenants"
    __table_args__ = {"schema": "core"}

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_code = Column(String(20), unique=True, nullable=False, index=True)
    organization_name = Column(String(255), nullable=False)
    payee_vpa = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=TenantStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
