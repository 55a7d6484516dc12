from typing import Dict
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.schemas import CurrentUser
from feeledger.auth.security import decode_access_token
from feeledger.core.exceptions import ServiceError
from feeledger.core.tenant_context import TenantContext, resolve_tenant_context
from feeledger.db.session import get_db


# Tokens are issued by the platform's auth service; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Resolve the authenticated caller from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    tenant_id_str = payload.get("tenant_id")
    role_name = payload.get("role")
    if not user_id_str or not tenant_id_str or not role_name:
        raise credentials_exception

    try:
        user_id = UUID(user_id_str)
        tenant_id = UUID(tenant_id_str)
    except ValueError:
        raise credentials_exception

    permissions: Dict[str, Dict[str, bool]] = payload.get("permissions") or {}
    if not isinstance(permissions, dict):
        raise credentials_exception

    return CurrentUser(
        id=user_id,
        tenant_id=tenant_id,
        role=str(role_name).upper(),
        permissions=permissions,
    )


async def get_tenant_context(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TenantContext:
    """Dependency: bind the request to exactly one active tenant."""
    try:
        return await resolve_tenant_context(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
