"""
Payment reconciliation.

A payer submits a claim (amount plus settlement reference); staff verify or
reject it. Only verified transactions move money on the invoice, and every
verification for the same invoice is serialized so two reviewers can never
both count against the same outstanding balance.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core.audit import log_fee_audit
from feeledger.core.enums import (
    AuditAction,
    PaymentMethod,
    TERMINAL_INVOICE_STATUSES,
    TransactionStatus,
)
from feeledger.core.exceptions import AlreadyProcessedError, NotFoundError, ValidationError
from feeledger.core.ledger import status_after_verification, verified_sum
from feeledger.core.models import Invoice, PaymentTransaction
from feeledger.core.money import format_amount, to_money
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import run_in_transaction

from .schemas import PaymentReject, PaymentSubmit, PaymentTransactionResponse

logger = logging.getLogger(__name__)


def _transaction_to_response(tx: PaymentTransaction) -> PaymentTransactionResponse:
    return PaymentTransactionResponse(
        id=tx.id,
        tenant_id=tx.tenant_id,
        invoice_id=tx.invoice_id,
        student_id=tx.student_id,
        amount=to_money(tx.amount),
        method=tx.method,
        external_reference=tx.external_reference,
        status=tx.status,
        submitted_by=tx.submitted_by,
        submitted_at=tx.submitted_at,
        reviewed_by=tx.reviewed_by,
        reviewed_at=tx.reviewed_at,
        rejection_reason=tx.rejection_reason,
    )


async def _get_invoice(db: AsyncSession, tenant_id: UUID, invoice_id: UUID, for_update: bool = False) -> Invoice:
    stmt = select(Invoice).where(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    inv = (await db.execute(stmt)).scalar_one_or_none()
    if not inv:
        raise NotFoundError("Invoice not found")
    return inv


async def _get_transaction_for_update(db: AsyncSession, tenant_id: UUID, transaction_id: UUID) -> PaymentTransaction:
    tx = (
        await db.execute(
            select(PaymentTransaction)
            .where(PaymentTransaction.id == transaction_id, PaymentTransaction.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not tx:
        raise NotFoundError("Transaction not found")
    return tx


async def _invoice_id_of(db: AsyncSession, ctx: TenantContext, transaction_id: UUID) -> UUID:
    async def _work() -> UUID:
        invoice_id = (
            await db.execute(
                select(PaymentTransaction.invoice_id).where(
                    PaymentTransaction.id == transaction_id,
                    PaymentTransaction.tenant_id == ctx.tenant_id,
                )
            )
        ).scalar_one_or_none()
        if invoice_id is None:
            raise NotFoundError("Transaction not found")
        return invoice_id

    return await run_in_transaction(db, _work, readonly=True)


# --- Submission ---
async def submit_payment(
    db: AsyncSession,
    ctx: TenantContext,
    payload: PaymentSubmit,
) -> PaymentTransactionResponse:
    """Record a payer's claim. The invoice is not touched until the claim is verified."""
    ctx.authorize("payments", "create")
    amount = to_money(payload.amount)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")
    reference = (payload.external_reference or "").strip() or None
    if payload.method == PaymentMethod.manual_reference and not reference:
        raise ValidationError("Settlement reference is required for manual reference payments")

    async def _work() -> PaymentTransaction:
        inv = await _get_invoice(db, ctx.tenant_id, payload.invoice_id)
        # Settled or cancelled invoices take no new claims, paid ones included
        if inv.status in TERMINAL_INVOICE_STATUSES:
            raise ValidationError(f"Invoice is {inv.status}; payments are not accepted")
        tx = PaymentTransaction(
            tenant_id=ctx.tenant_id,
            invoice_id=inv.id,
            student_id=inv.student_id,
            amount=amount,
            method=payload.method.value,
            external_reference=reference,
            status=TransactionStatus.submitted.value,
            submitted_by=ctx.user_id,
            submitted_at=datetime.now(timezone.utc),
        )
        db.add(tx)
        await db.flush()
        await log_fee_audit(
            db, ctx.tenant_id, "payment_transactions", tx.id,
            AuditAction.CREATE.value, None,
            {
                "invoice_id": str(inv.id),
                "amount": format_amount(amount),
                "method": tx.method,
                "external_reference": reference,
            },
            ctx.user_id,
        )
        return tx

    tx = await run_in_transaction(db, _work)
    logger.info(f"Payment {tx.id} of {format_amount(amount)} submitted against invoice {tx.invoice_id}")
    return _transaction_to_response(tx)


# --- Review ---
async def verify_payment(
    db: AsyncSession,
    ctx: TenantContext,
    transaction_id: UUID,
) -> PaymentTransactionResponse:
    """
    Mark a submitted claim verified and recompute the invoice status from the
    sum of all verified transactions. A claim that would push the verified sum
    above the invoice net is refused and stays submitted.
    """
    ctx.authorize("payments", "verify")
    invoice_id = await _invoice_id_of(db, ctx, transaction_id)

    async def _work() -> PaymentTransaction:
        tx = await _get_transaction_for_update(db, ctx.tenant_id, transaction_id)
        if tx.status != TransactionStatus.submitted.value:
            raise AlreadyProcessedError(f"Transaction is already {tx.status}")
        inv = await _get_invoice(db, ctx.tenant_id, tx.invoice_id, for_update=True)
        if inv.status in TERMINAL_INVOICE_STATUSES:
            raise ValidationError(f"Invoice is {inv.status}; reject this claim instead")
        net = to_money(inv.net_amount)
        already = await verified_sum(db, ctx.tenant_id, inv.id)
        if already + to_money(tx.amount) > net:
            raise ValidationError(
                f"Verifying {format_amount(tx.amount)} would exceed the invoice net of "
                f"{format_amount(net)} ({format_amount(already)} already verified)"
            )

        tx.status = TransactionStatus.verified.value
        tx.reviewed_by = ctx.user_id
        tx.reviewed_at = datetime.now(timezone.utc)
        await db.flush()
        await log_fee_audit(
            db, ctx.tenant_id, "payment_transactions", tx.id,
            AuditAction.VERIFY.value,
            {"status": TransactionStatus.submitted.value},
            {"status": tx.status, "amount": format_amount(tx.amount)},
            ctx.user_id,
        )

        total = await verified_sum(db, ctx.tenant_id, inv.id)
        old_status = inv.status
        new_status = status_after_verification(old_status, total, net)
        if new_status != old_status:
            inv.status = new_status
            await db.flush()
            await log_fee_audit(
                db, ctx.tenant_id, "invoices", inv.id,
                AuditAction.STATUS_CHANGE.value,
                {"status": old_status},
                {"status": new_status, "verified_total": format_amount(total)},
                ctx.user_id,
            )
            logger.info(f"Invoice {inv.invoice_number} moved {old_status} -> {new_status}")
        return tx

    tx = await run_in_transaction(db, _work, lock_keys=[("invoice", invoice_id)])
    logger.info(f"Payment {tx.id} verified by {ctx.user_id}")
    return _transaction_to_response(tx)


async def reject_payment(
    db: AsyncSession,
    ctx: TenantContext,
    transaction_id: UUID,
    payload: PaymentReject,
) -> PaymentTransactionResponse:
    """Mark a submitted claim rejected. The invoice is unaffected."""
    ctx.authorize("payments", "verify")
    reason = payload.reason.strip()
    if not reason:
        raise ValidationError("Rejection reason is required")
    invoice_id = await _invoice_id_of(db, ctx, transaction_id)

    async def _work() -> PaymentTransaction:
        tx = await _get_transaction_for_update(db, ctx.tenant_id, transaction_id)
        if tx.status != TransactionStatus.submitted.value:
            raise AlreadyProcessedError(f"Transaction is already {tx.status}")
        tx.status = TransactionStatus.rejected.value
        tx.reviewed_by = ctx.user_id
        tx.reviewed_at = datetime.now(timezone.utc)
        tx.rejection_reason = reason
        await db.flush()
        await log_fee_audit(
            db, ctx.tenant_id, "payment_transactions", tx.id,
            AuditAction.REJECT.value,
            {"status": TransactionStatus.submitted.value},
            {"status": tx.status, "reason": reason},
            ctx.user_id,
        )
        return tx

    tx = await run_in_transaction(db, _work, lock_keys=[("invoice", invoice_id)])
    logger.warning(f"Payment {tx.id} rejected by {ctx.user_id}: {reason}")
    return _transaction_to_response(tx)


async def list_transactions(
    db: AsyncSession,
    ctx: TenantContext,
    invoice_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
) -> List[PaymentTransactionResponse]:
    ctx.authorize("payments", "read")

    async def _work() -> List[PaymentTransactionResponse]:
        stmt = select(PaymentTransaction).where(PaymentTransaction.tenant_id == ctx.tenant_id)
        if invoice_id is not None:
            stmt = stmt.where(PaymentTransaction.invoice_id == invoice_id)
        if status_filter:
            stmt = stmt.where(PaymentTransaction.status == status_filter)
        stmt = stmt.order_by(PaymentTransaction.submitted_at.desc())
        return [_transaction_to_response(tx) for tx in (await db.execute(stmt)).scalars().all()]

    return await run_in_transaction(db, _work, readonly=True)
