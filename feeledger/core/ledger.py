"""Invoice status rules and verified-payment totals shared by the invoice and payment services."""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.enums import InvoiceStatus, TERMINAL_INVOICE_STATUSES, TransactionStatus
from feeledger.core.models import PaymentTransaction
from feeledger.core.money import ZERO, to_money


async def verified_sum(db: AsyncSession, tenant_id: UUID, invoice_id: UUID) -> Decimal:
    """Sum of verified transaction amounts for one invoice, read inside the caller's transaction."""
    total = (
        await db.execute(
            select(func.coalesce(func.sum(PaymentTransaction.amount), 0)).where(
                PaymentTransaction.tenant_id == tenant_id,
                PaymentTransaction.invoice_id == invoice_id,
                PaymentTransaction.status == TransactionStatus.verified.value,
            )
        )
    ).scalar()
    return to_money(total or ZERO)


async def verified_sums(
    db: AsyncSession,
    tenant_id: UUID,
    invoice_ids: Iterable[UUID],
) -> Dict[UUID, Decimal]:
    ids = list(invoice_ids)
    if not ids:
        return {}
    rows = (
        await db.execute(
            select(
                PaymentTransaction.invoice_id,
                func.coalesce(func.sum(PaymentTransaction.amount), 0),
            )
            .where(
                PaymentTransaction.tenant_id == tenant_id,
                PaymentTransaction.invoice_id.in_(ids),
                PaymentTransaction.status == TransactionStatus.verified.value,
            )
            .group_by(PaymentTransaction.invoice_id)
        )
    ).all()
    sums = {invoice_id: ZERO for invoice_id in ids}
    for invoice_id, total in rows:
        sums[invoice_id] = to_money(total)
    return sums


def status_after_verification(current: str, verified_total: Decimal, net: Decimal) -> str:
    """
    Invoice status once ``verified_total`` (all verified payments, including the one
    just verified) is known.

    pending -> partially_paid | paid; partially_paid -> paid; overdue -> paid once
    the net is covered, otherwise it stays overdue.
    """
    if current in TERMINAL_INVOICE_STATUSES:
        raise ValueError(f"Invoice in terminal status {current} cannot take payments")
    if verified_total >= net:
        return InvoiceStatus.paid.value
    if current == InvoiceStatus.pending.value and verified_total > 0:
        return InvoiceStatus.partially_paid.value
    return current


def should_mark_overdue(
    current: str,
    due_date: date,
    today: date,
    verified_total: Decimal,
    net: Decimal,
) -> bool:
    return (
        current in (InvoiceStatus.pending.value, InvoiceStatus.partially_paid.value)
        and due_date < today
        and verified_total < net
    )
