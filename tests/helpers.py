"""Shared builders for ledger tests."""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import UUID, uuid4

from jose import jwt

from feeledger.core.config import settings
from feeledger.core.enums import Role
from feeledger.core.tenant_context import TenantContext

ACADEMIC_YEAR = "2025-2026"


def future_due_date(days: int = 30) -> date:
    return date.today() + timedelta(days=days)


def make_ctx(tenant_id: UUID, role: Role = Role.SCHOOL_ADMIN, permissions: Optional[Dict] = None) -> TenantContext:
    return TenantContext(
        tenant_id=tenant_id,
        user_id=uuid4(),
        role=role.value,
        permissions=permissions or {},
    )


def issue_token(claims: Dict, expires_minutes: int = 15) -> str:
    """Sign a bearer token the way the identity service does."""
    to_encode = dict(claims)
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(tenant_id: UUID, role: Role = Role.SCHOOL_ADMIN, user_id: Optional[UUID] = None) -> Dict[str, str]:
    token = issue_token(
        {
            "user_id": str(user_id or uuid4()),
            "tenant_id": str(tenant_id),
            "role": role.value,
        }
    )
    return {"Authorization": f"Bearer {token}"}
