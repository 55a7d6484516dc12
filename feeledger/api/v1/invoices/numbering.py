"""
Invoice number allocation.

- Format: INV-<per-tenant sequence, 6+ digits>-<8 random chars>, e.g. INV-000042-K7QF2M9X.
- The sequence is monotonic per tenant; the random part makes numbers unguessable,
  so knowing one school's numbers does not reveal another school's.
- Numbers are opaque to callers and unique across all tenants.
"""
import logging
import secrets
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.config import settings
from feeledger.core.exceptions import GenerationError
from feeledger.core.models import Invoice, InvoiceSequence

logger = logging.getLogger(__name__)

# Uppercase alphanumeric without ambiguous 0/O, 1/I
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SUFFIX_LENGTH = 8


def _random_suffix() -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(SUFFIX_LENGTH))


def generate_invoice_number_candidate(sequence_value: int) -> str:
    """Single candidate for ``sequence_value`` (no DB check)."""
    return f"INV-{sequence_value:06d}-{_random_suffix()}"


async def reserve_sequence_values(db: AsyncSession, tenant_id: UUID, count: int) -> int:
    """
    Advance the tenant's sequence by ``count`` under a row lock and return the first
    reserved value. The advance is part of the caller's transaction, so a rolled-back
    batch gives its values back.
    """
    seq = (
        await db.execute(
            select(InvoiceSequence)
            .where(InvoiceSequence.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if seq is None:
        seq = InvoiceSequence(tenant_id=tenant_id, last_value=0)
        db.add(seq)
        try:
            await db.flush()
        except IntegrityError:
            raise GenerationError("Invoice sequence was initialised concurrently; retry the request")
    first = seq.last_value + 1
    seq.last_value = seq.last_value + count
    await db.flush()
    return first


async def allocate_invoice_numbers(
    db: AsyncSession,
    tenant_id: UUID,
    count: int,
    max_attempts: Optional[int] = None,
) -> List[str]:
    """
    Allocate ``count`` invoice numbers, checked for uniqueness against the store
    and within the batch. Collisions are retried with a fresh random part up to
    ``max_attempts`` rounds, then GenerationError.
    """
    if count <= 0:
        return []
    attempts_allowed = max_attempts or settings.invoice_number_max_attempts
    first = await reserve_sequence_values(db, tenant_id, count)

    resolved: Dict[int, str] = {}
    unresolved = list(range(first, first + count))
    taken = set()
    attempts = 0
    while unresolved and attempts < attempts_allowed:
        attempts += 1
        candidates = {value: generate_invoice_number_candidate(value) for value in unresolved}
        existing = set(
            (
                await db.execute(
                    select(Invoice.invoice_number).where(
                        Invoice.invoice_number.in_(list(candidates.values()))
                    )
                )
            ).scalars().all()
        )
        for value, candidate in candidates.items():
            if candidate in existing or candidate in taken:
                continue
            resolved[value] = candidate
            taken.add(candidate)
        unresolved = [value for value in unresolved if value not in resolved]
        if unresolved:
            logger.warning(
                f"Invoice number collision for tenant {tenant_id} "
                f"({len(unresolved)} pending, attempt {attempts}/{attempts_allowed})"
            )

    if unresolved:
        raise GenerationError("Could not generate unique invoice numbers")
    return [resolved[value] for value in range(first, first + count)]
