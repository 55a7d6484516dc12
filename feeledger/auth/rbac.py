"""Role defaults for ledger operations. Consulted only through TenantContext.authorize."""

from typing import Dict, FrozenSet, Optional

from feeledger.core.enums import Role

# module -> actions
_ALL = {
    "fees": frozenset({"read", "create", "update", "delete"}),
    "invoices": frozenset({"read", "create", "update"}),
    "payments": frozenset({"read", "create", "verify"}),
    "reports": frozenset({"read"}),
}

ROLE_PERMISSIONS: Dict[str, Dict[str, FrozenSet[str]]] = {
    Role.SUPER_ADMIN.value: _ALL,
    Role.SCHOOL_ADMIN.value: _ALL,
    Role.ACCOUNTANT.value: {
        "fees": frozenset({"read"}),
        "invoices": frozenset({"read", "create", "update"}),
        "payments": frozenset({"read", "create", "verify"}),
        "reports": frozenset({"read"}),
    },
    Role.TEACHER.value: {
        "fees": frozenset({"read"}),
        "invoices": frozenset({"read"}),
        "reports": frozenset({"read"}),
    },
    Role.PARENT.value: {
        "invoices": frozenset({"read"}),
        "payments": frozenset({"read", "create"}),
    },
}


def has_permission(
    role: str,
    module: str,
    action: str,
    grants: Optional[Dict[str, Dict[str, bool]]] = None,
) -> bool:
    """
    True if ``role`` may perform ``action`` on ``module``.

    Example:
        has_permission("ACCOUNTANT", "payments", "verify")
    """
    defaults = ROLE_PERMISSIONS.get((role or "").upper(), {})
    if action in defaults.get(module, frozenset()):
        return True
    module_grants = (grants or {}).get(module, {})
    return bool(module_grants.get(action, False))
