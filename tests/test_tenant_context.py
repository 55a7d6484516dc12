from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.auth.rbac import has_permission
from feeledger.core import directory
from feeledger.auth.schemas import CurrentUser
from feeledger.core.enums import Role, TenantStatus
from feeledger.core.exceptions import NotFoundError, PermissionDeniedError
from feeledger.core.models import Tenant
from feeledger.core.tenant_context import resolve_tenant_context

from tests.helpers import make_ctx


@pytest.mark.parametrize(
    "role, module, action, allowed",
    [
        (Role.SCHOOL_ADMIN, "fees", "delete", True),
        (Role.ACCOUNTANT, "payments", "verify", True),
        (Role.ACCOUNTANT, "fees", "update", False),
        (Role.TEACHER, "invoices", "read", True),
        (Role.TEACHER, "invoices", "create", False),
        (Role.PARENT, "payments", "create", True),
        (Role.PARENT, "payments", "verify", False),
        (Role.PARENT, "reports", "read", False),
    ],
)
def test_role_defaults(role: Role, module: str, action: str, allowed: bool) -> None:
    assert has_permission(role.value, module, action) is allowed


def test_explicit_grant_extends_role() -> None:
    assert has_permission("TEACHER", "payments", "create", {"payments": {"create": True}}) is True
    assert has_permission("TEACHER", "payments", "verify", {"payments": {"create": True}}) is False
    assert has_permission("unknown", "fees", "read") is False


def test_authorize_and_tenant_guard() -> None:
    tenant_id = uuid4()
    ctx = make_ctx(tenant_id, Role.TEACHER)
    ctx.authorize("invoices", "read")
    with pytest.raises(PermissionDeniedError):
        ctx.authorize("invoices", "update")

    ctx.ensure_same_tenant(tenant_id)
    with pytest.raises(PermissionDeniedError):
        ctx.ensure_same_tenant(uuid4())


@pytest.mark.asyncio
async def test_resolve_requires_active_tenant(db_session: AsyncSession, school) -> None:
    user = CurrentUser(id=uuid4(), tenant_id=school.tenant_id, role="ACCOUNTANT", permissions={})
    ctx = await resolve_tenant_context(db_session, user)
    assert ctx.tenant_id == school.tenant_id
    assert ctx.role == "ACCOUNTANT"

    with pytest.raises(NotFoundError):
        await resolve_tenant_context(
            db_session, CurrentUser(id=uuid4(), tenant_id=uuid4(), role="ACCOUNTANT", permissions={})
        )

    tenant = await db_session.get(Tenant, school.tenant_id, populate_existing=True)
    tenant.status = TenantStatus.INACTIVE.value
    await db_session.commit()
    with pytest.raises(NotFoundError):
        await resolve_tenant_context(db_session, user)


@pytest.mark.asyncio
async def test_directory_lookups_are_tenant_scoped(db_session: AsyncSession, school, other_school) -> None:
    student = school.students[0]
    assert (await directory.get_student(db_session, school.tenant_id, student.id)).id == student.id
    assert await directory.get_student(db_session, other_school.tenant_id, student.id) is None
    assert await directory.get_class(db_session, other_school.tenant_id, school.grade5.id) is None

    found = await directory.get_students(
        db_session, school.tenant_id, [student.id, other_school.students[0].id]
    )
    assert [s.id for s in found] == [student.id]
