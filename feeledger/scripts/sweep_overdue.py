"""
Mark overdue invoices for every active tenant.

Meant for a daily scheduler; safe to run repeatedly (already-overdue invoices are skipped).

Usage:
  python -m feeledger.scripts.sweep_overdue
  python -m feeledger.scripts.sweep_overdue --tenant 0d4c...  --as-of 2026-06-30
"""

import argparse
import asyncio
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import select

from feeledger.api.v1.invoices.service import mark_overdue_invoices
from feeledger.core.enums import Role, TenantStatus
from feeledger.core.exceptions import ServiceError
from feeledger.core.log_config import configure_logging
from feeledger.core.models import Tenant
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import AsyncSessionLocal

logger = logging.getLogger("feeledger.scripts.sweep_overdue")

# Recorded as changed_by on the audit rows written by the sweep
SYSTEM_USER_ID = UUID(int=0)


async def sweep(tenant_id: Optional[UUID] = None, as_of: Optional[date] = None) -> int:
    """Run the overdue sweep; returns the number of invoices marked across tenants."""
    async with AsyncSessionLocal() as session:
        stmt = select(Tenant.id).where(Tenant.status == TenantStatus.ACTIVE.value)
        if tenant_id is not None:
            stmt = stmt.where(Tenant.id == tenant_id)
        tenant_ids = (await session.execute(stmt)).scalars().all()
        await session.rollback()

        total = 0
        for tid in tenant_ids:
            ctx = TenantContext(tenant_id=tid, user_id=SYSTEM_USER_ID, role=Role.SUPER_ADMIN.value)
            try:
                result = await mark_overdue_invoices(session, ctx, today=as_of)
            except ServiceError as e:
                logger.error(f"Overdue sweep failed for tenant {tid}: {e.message}")
                continue
            total += result.marked_overdue
        return total


def main() -> None:
    parser = argparse.ArgumentParser(description="Mark past-due invoices as overdue.")
    parser.add_argument("--tenant", type=UUID, default=None, help="Only sweep this tenant")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Reference date (YYYY-MM-DD); defaults to today",
    )
    args = parser.parse_args()
    configure_logging()
    total = asyncio.run(sweep(args.tenant, args.as_of))
    print(f"Marked {total} invoice(s) overdue.")


if __name__ == "__main__":
    main()
