from typing import Dict
from uuid import UUID

from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Authenticated caller as asserted by the access token.
    The ledger trusts the token for identity and role; tenant scope is enforced per query.
    """

    id: UUID
    tenant_id: UUID
    role: str
    # Grants on top of the role defaults, e.g. {"payments": {"verify": True}}
    permissions: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
