"""
Tenant context: the single authorization gate for ledger operations.

Every service function receives a TenantContext and calls ``authorize`` before
touching the store. All queries are filtered by ``ctx.tenant_id``; rows from
another tenant are indistinguishable from missing rows.
"""
import logging
from typing import Dict
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.rbac import has_permission
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import TenantStatus
from feeledger.core.exceptions import NotFoundError, PermissionDeniedError
from feeledger.core.models import Tenant

logger = logging.getLogger(__name__)


class TenantContext(BaseModel):
    tenant_id: UUID
    user_id: UUID
    role: str
    permissions: Dict[str, Dict[str, bool]] = Field(default_factory=dict)

    def authorize(self, module: str, action: str) -> None:
        if not has_permission(self.role, module, action, self.permissions):
            logger.warning(
                f"Denied {module}:{action} for user {self.user_id} ({self.role}) in tenant {self.tenant_id}"
            )
            raise PermissionDeniedError(f"Role {self.role} may not {action} {module}")

    def ensure_same_tenant(self, tenant_id: UUID) -> None:
        """Reject an explicitly requested tenant that differs from the caller's own."""
        if tenant_id != self.tenant_id:
            raise PermissionDeniedError("Cross-tenant access is not allowed")


async def resolve_tenant_context(db: AsyncSession, current_user: CurrentUser) -> TenantContext:
    """Build the context for ``current_user``; the tenant must exist and be ACTIVE."""
    result = await db.execute(
        select(Tenant.status).where(Tenant.id == current_user.tenant_id)
    )
    tenant_status = result.scalar_one_or_none()
    # Release the read snapshot; ledger operations open their own unit of work
    await db.rollback()
    if tenant_status is None or tenant_status != TenantStatus.ACTIVE.value:
        raise NotFoundError("Tenant not found or inactive")
    return TenantContext(
        tenant_id=current_user.tenant_id,
        user_id=current_user.id,
        role=current_user.role,
        permissions=current_user.permissions,
    )
