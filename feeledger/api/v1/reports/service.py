"""Ledger summary, computed from the tables on every call."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.enums import InvoiceStatus, OPEN_INVOICE_STATUSES, TransactionStatus
from feeledger.core.models import Invoice, PaymentTransaction
from feeledger.core.money import ZERO, to_money
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import run_in_transaction

from .schemas import LedgerSummary


async def summarize(db: AsyncSession, ctx: TenantContext) -> LedgerSummary:
    """
    pending_total: net of pending, partially_paid and overdue invoices.
    collected_total: all verified transaction amounts.
    invoice_counts: invoices per status, every status present.
    """
    ctx.authorize("reports", "read")

    async def _work() -> LedgerSummary:
        pending = (
            await db.execute(
                select(func.coalesce(func.sum(Invoice.net_amount), 0)).where(
                    Invoice.tenant_id == ctx.tenant_id,
                    Invoice.status.in_(OPEN_INVOICE_STATUSES),
                )
            )
        ).scalar()
        collected = (
            await db.execute(
                select(func.coalesce(func.sum(PaymentTransaction.amount), 0)).where(
                    PaymentTransaction.tenant_id == ctx.tenant_id,
                    PaymentTransaction.status == TransactionStatus.verified.value,
                )
            )
        ).scalar()
        rows = (
            await db.execute(
                select(Invoice.status, func.count(Invoice.id))
                .where(Invoice.tenant_id == ctx.tenant_id)
                .group_by(Invoice.status)
            )
        ).all()
        counts = {s.value: 0 for s in InvoiceStatus}
        for invoice_status, count in rows:
            counts[invoice_status] = count
        return LedgerSummary(
            tenant_id=ctx.tenant_id,
            pending_total=to_money(pending or ZERO),
            collected_total=to_money(collected or ZERO),
            invoice_counts=counts,
        )

    return await run_in_transaction(db, _work, readonly=True)
