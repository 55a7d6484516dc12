"""Invoice service: batch generation, discounts, cancellation, overdue sweep, payment intents."""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote, urlencode
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feeledger.core import directory
from feeledger.core.audit import log_fee_audit
from feeledger.core.config import settings
from feeledger.core.enums import AuditAction, InvoiceStatus, TERMINAL_INVOICE_STATUSES
from feeledger.core.exceptions import (
    AlreadyProcessedError,
    GenerationError,
    NotFoundError,
    ValidationError,
)
from feeledger.core.ledger import should_mark_overdue, verified_sum, verified_sums
from feeledger.core.models import FeeHead, FeeStructure, Invoice, InvoiceLine, Tenant
from feeledger.core.money import ZERO, format_amount, to_money
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import run_in_transaction

from .numbering import allocate_invoice_numbers
from .schemas import (
    DiscountApply,
    GenerateInvoicesRequest,
    GenerateInvoicesResponse,
    InvoiceCancel,
    InvoiceLineResponse,
    InvoiceResponse,
    OverdueSweepResponse,
    PaymentIntentResponse,
    SkippedStudent,
)

logger = logging.getLogger(__name__)

SKIP_NO_FEE_STRUCTURES = "no_fee_structures"


def _is_invoice_number_collision(exc: IntegrityError) -> bool:
    """True when the unique index on invoice_number (not some other constraint) rejected the insert."""
    return "invoice_number" in str(exc.orig)


def _invoice_to_response(inv: Invoice, verified: Decimal = ZERO) -> InvoiceResponse:
    net = to_money(inv.net_amount)
    verified = to_money(verified)
    return InvoiceResponse(
        id=inv.id,
        tenant_id=inv.tenant_id,
        student_id=inv.student_id,
        invoice_number=inv.invoice_number,
        academic_year=inv.academic_year,
        total_amount=to_money(inv.total_amount),
        discount_amount=to_money(inv.discount_amount),
        net_amount=net,
        verified_amount=verified,
        outstanding_amount=max(ZERO, net - verified),
        due_date=inv.due_date,
        status=inv.status,
        cancellation_reason=inv.cancellation_reason,
        lines=[
            InvoiceLineResponse(
                id=line.id,
                fee_structure_id=line.fee_structure_id,
                fee_head_id=line.fee_head_id,
                fee_head_name=line.fee_head_name,
                amount=to_money(line.amount),
            )
            for line in inv.lines
        ],
        created_at=inv.created_at,
        updated_at=inv.updated_at,
    )


def _invoice_snapshot(inv: Invoice) -> dict:
    return {
        "total_amount": format_amount(inv.total_amount),
        "discount_amount": format_amount(inv.discount_amount),
        "net_amount": format_amount(inv.net_amount),
        "status": inv.status,
    }


async def _get_invoice_for_update(db: AsyncSession, tenant_id: UUID, invoice_id: UUID) -> Invoice:
    inv = (
        await db.execute(
            select(Invoice)
            .where(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if not inv:
        raise NotFoundError("Invoice not found")
    return inv


# --- Generation ---
async def generate_invoices(
    db: AsyncSession,
    ctx: TenantContext,
    payload: GenerateInvoicesRequest,
    today: Optional[date] = None,
) -> GenerateInvoicesResponse:
    """
    Materialize one pending invoice per student from the fee structures of the
    student's class for ``academic_year``.

    Students without applicable structures are reported as skipped. The batch is
    all-or-nothing: an error, timeout or cancellation leaves no invoice behind.
    """
    ctx.authorize("invoices", "create")
    today = today or date.today()
    student_ids = list(dict.fromkeys(payload.student_ids))
    if not student_ids:
        raise ValidationError("Select at least one student")
    if payload.due_date < today:
        raise ValidationError("Due date cannot be in the past")
    academic_year = payload.academic_year.strip()
    if not academic_year:
        raise ValidationError("Academic year is required")

    async def _work() -> Tuple[List[Invoice], List[SkippedStudent]]:
        students = {s.id: s for s in await directory.get_students(db, ctx.tenant_id, student_ids)}
        missing = [str(sid) for sid in student_ids if sid not in students]
        if missing:
            raise ValidationError(f"Students not found in this school: {', '.join(missing)}")

        structures_by_class: Dict[UUID, List[FeeStructure]] = {}
        for student in students.values():
            if student.class_id not in structures_by_class:
                structures_by_class[student.class_id] = await directory.get_class_fee_structures(
                    db, ctx.tenant_id, student.class_id, academic_year
                )
        head_ids = {fs.fee_head_id for group in structures_by_class.values() for fs in group}
        head_names: Dict[UUID, str] = {}
        if head_ids:
            rows = (
                await db.execute(select(FeeHead.id, FeeHead.name).where(FeeHead.id.in_(head_ids)))
            ).all()
            head_names = {head_id: name for head_id, name in rows}

        to_create: List[Tuple[UUID, List[FeeStructure]]] = []
        skipped: List[SkippedStudent] = []
        for sid in student_ids:
            structures = structures_by_class[students[sid].class_id]
            if not structures:
                skipped.append(SkippedStudent(student_id=sid, reason=SKIP_NO_FEE_STRUCTURES))
                continue
            to_create.append((sid, structures))
        if not to_create:
            return [], skipped

        numbers = await allocate_invoice_numbers(db, ctx.tenant_id, len(to_create))
        created: List[Invoice] = []
        for (sid, structures), number in zip(to_create, numbers):
            lines = [
                InvoiceLine(
                    tenant_id=ctx.tenant_id,
                    fee_structure_id=fs.id,
                    fee_head_id=fs.fee_head_id,
                    fee_head_name=head_names.get(fs.fee_head_id, ""),
                    amount=to_money(fs.amount),
                )
                for fs in structures
            ]
            inv = Invoice(
                tenant_id=ctx.tenant_id,
                student_id=sid,
                invoice_number=number,
                academic_year=academic_year,
                total_amount=sum((line.amount for line in lines), ZERO),
                discount_amount=ZERO,
                due_date=payload.due_date,
                status=InvoiceStatus.pending.value,
                lines=lines,
            )
            inv.recompute_net()
            db.add(inv)
            created.append(inv)
        try:
            await db.flush()
        except IntegrityError as exc:
            if not _is_invoice_number_collision(exc):
                raise
            # Another worker committed the same number between the check and the insert
            raise GenerationError("Invoice number collided while saving; retry the request")
        for inv in created:
            await log_fee_audit(
                db, ctx.tenant_id, "invoices", inv.id,
                AuditAction.CREATE.value, None,
                {
                    "invoice_number": inv.invoice_number,
                    "student_id": str(inv.student_id),
                    "academic_year": academic_year,
                    "total_amount": format_amount(inv.total_amount),
                    "net_amount": format_amount(inv.net_amount),
                    "due_date": inv.due_date.isoformat(),
                },
                ctx.user_id,
            )
        return created, skipped

    created, skipped = await run_in_transaction(
        db, _work, lock_keys=[("invoice_sequence", ctx.tenant_id)]
    )
    logger.info(
        f"Generated {len(created)} invoices for tenant {ctx.tenant_id}, year {academic_year} "
        f"({len(skipped)} students skipped)"
    )
    return GenerateInvoicesResponse(
        invoices=[_invoice_to_response(inv) for inv in created],
        skipped=skipped,
    )


# --- Discount ---
async def apply_discount(
    db: AsyncSession,
    ctx: TenantContext,
    invoice_id: UUID,
    payload: DiscountApply,
) -> InvoiceResponse:
    """Set the invoice discount and recompute net. Status is left as is."""
    ctx.authorize("invoices", "update")
    discount = to_money(payload.discount_amount)
    if discount < 0:
        raise ValidationError("Discount cannot be negative")

    async def _work() -> Tuple[Invoice, Decimal]:
        inv = await _get_invoice_for_update(db, ctx.tenant_id, invoice_id)
        if inv.status in TERMINAL_INVOICE_STATUSES:
            raise ValidationError(f"Cannot discount a {inv.status} invoice")
        if discount > to_money(inv.total_amount):
            raise ValidationError("Discount cannot exceed the invoice total")
        verified = await verified_sum(db, ctx.tenant_id, inv.id)
        new_net = to_money(inv.total_amount) - discount
        if verified > 0 and new_net <= verified:
            raise ValidationError(
                f"Discount would bring the net amount to {format_amount(new_net)}, "
                f"at or below the {format_amount(verified)} already paid"
            )
        old = _invoice_snapshot(inv)
        inv.discount_amount = discount
        inv.recompute_net()
        await db.flush()
        new = _invoice_snapshot(inv)
        if payload.reason:
            new["reason"] = payload.reason.strip()
        await log_fee_audit(
            db, ctx.tenant_id, "invoices", inv.id,
            AuditAction.UPDATE.value, old, new, ctx.user_id,
        )
        return inv, verified

    inv, verified = await run_in_transaction(db, _work, lock_keys=[("invoice", invoice_id)])
    logger.info(
        f"Applied discount {format_amount(discount)} to invoice {inv.invoice_number}; "
        f"net now {format_amount(inv.net_amount)}"
    )
    return _invoice_to_response(inv, verified)


# --- Cancellation ---
async def cancel_invoice(
    db: AsyncSession,
    ctx: TenantContext,
    invoice_id: UUID,
    payload: InvoiceCancel,
) -> InvoiceResponse:
    """Move a non-terminal invoice to the cancelled tombstone state."""
    ctx.authorize("invoices", "update")
    reason = payload.reason.strip()
    if not reason:
        raise ValidationError("Cancellation reason is required")

    async def _work() -> Tuple[Invoice, Decimal]:
        inv = await _get_invoice_for_update(db, ctx.tenant_id, invoice_id)
        if inv.status == InvoiceStatus.cancelled.value:
            raise AlreadyProcessedError("Invoice is already cancelled")
        if inv.status == InvoiceStatus.paid.value:
            raise ValidationError("Paid invoices cannot be cancelled")
        old_status = inv.status
        inv.status = InvoiceStatus.cancelled.value
        inv.cancellation_reason = reason
        await db.flush()
        await log_fee_audit(
            db, ctx.tenant_id, "invoices", inv.id,
            AuditAction.CANCEL.value,
            {"status": old_status},
            {"status": inv.status, "reason": reason},
            ctx.user_id,
        )
        return inv, await verified_sum(db, ctx.tenant_id, inv.id)

    inv, verified = await run_in_transaction(db, _work, lock_keys=[("invoice", invoice_id)])
    logger.info(f"Cancelled invoice {inv.invoice_number}: {reason}")
    return _invoice_to_response(inv, verified)


# --- Due-date sweep ---
async def mark_overdue_invoices(
    db: AsyncSession,
    ctx: TenantContext,
    today: Optional[date] = None,
) -> OverdueSweepResponse:
    """
    pending/partially_paid invoices past their due date and not fully paid -> overdue.

    Each invoice is flipped in its own unit under the invoice lock, so a payment
    verified concurrently is never overwritten by the sweep.
    """
    ctx.authorize("invoices", "update")
    today = today or date.today()

    async def _candidates() -> List[UUID]:
        rows = (
            await db.execute(
                select(Invoice.id).where(
                    Invoice.tenant_id == ctx.tenant_id,
                    Invoice.status.in_(
                        [InvoiceStatus.pending.value, InvoiceStatus.partially_paid.value]
                    ),
                    Invoice.due_date < today,
                ).order_by(Invoice.due_date)
            )
        ).scalars().all()
        return list(rows)

    candidate_ids = await run_in_transaction(db, _candidates, readonly=True)
    count = 0
    for invoice_id in candidate_ids:

        async def _flip(invoice_id: UUID = invoice_id) -> bool:
            inv = await _get_invoice_for_update(db, ctx.tenant_id, invoice_id)
            verified = await verified_sum(db, ctx.tenant_id, inv.id)
            if not should_mark_overdue(inv.status, inv.due_date, today, verified, to_money(inv.net_amount)):
                return False
            old_status = inv.status
            inv.status = InvoiceStatus.overdue.value
            await db.flush()
            await log_fee_audit(
                db, ctx.tenant_id, "invoices", inv.id,
                AuditAction.STATUS_CHANGE.value,
                {"status": old_status},
                {"status": inv.status, "as_of": today.isoformat()},
                ctx.user_id,
            )
            return True

        if await run_in_transaction(db, _flip, lock_keys=[("invoice", invoice_id)]):
            count += 1

    logger.info(f"Marked {count} invoices as overdue for tenant {ctx.tenant_id}")
    return OverdueSweepResponse(marked_overdue=count, as_of=today)


# --- Reads ---
async def get_invoice(
    db: AsyncSession,
    ctx: TenantContext,
    invoice_id: UUID,
) -> InvoiceResponse:
    ctx.authorize("invoices", "read")

    async def _work() -> InvoiceResponse:
        inv = (
            await db.execute(
                select(Invoice).where(Invoice.id == invoice_id, Invoice.tenant_id == ctx.tenant_id)
            )
        ).scalar_one_or_none()
        if not inv:
            raise NotFoundError("Invoice not found")
        return _invoice_to_response(inv, await verified_sum(db, ctx.tenant_id, inv.id))

    return await run_in_transaction(db, _work, readonly=True)


async def list_invoices(
    db: AsyncSession,
    ctx: TenantContext,
    status_filter: Optional[str] = None,
    student_id: Optional[UUID] = None,
    academic_year: Optional[str] = None,
) -> List[InvoiceResponse]:
    ctx.authorize("invoices", "read")

    async def _work() -> List[InvoiceResponse]:
        stmt = select(Invoice).where(Invoice.tenant_id == ctx.tenant_id)
        if status_filter:
            stmt = stmt.where(Invoice.status == status_filter)
        if student_id is not None:
            stmt = stmt.where(Invoice.student_id == student_id)
        if academic_year:
            stmt = stmt.where(Invoice.academic_year == academic_year.strip())
        stmt = stmt.order_by(Invoice.created_at.desc())
        invoices = (await db.execute(stmt)).scalars().all()
        sums = await verified_sums(db, ctx.tenant_id, [inv.id for inv in invoices])
        return [_invoice_to_response(inv, sums.get(inv.id, ZERO)) for inv in invoices]

    return await run_in_transaction(db, _work, readonly=True)


# --- Payment intent ---
def build_upi_uri(payee_vpa: str, payee_name: str, amount: Decimal, reference: str) -> str:
    query = urlencode(
        {
            "pa": payee_vpa,
            "pn": payee_name,
            "am": format_amount(amount),
            "tn": reference,
            "cu": "INR",
        },
        quote_via=quote,
    )
    return f"upi://pay?{query}"


async def get_payment_intent(
    db: AsyncSession,
    ctx: TenantContext,
    invoice_id: UUID,
) -> PaymentIntentResponse:
    """
    Payee, outstanding amount and reference for an external UI to render.
    This service never contacts a payment network; the payer later submits the
    settlement reference through the payments API.
    """
    ctx.authorize("invoices", "read")

    async def _work() -> PaymentIntentResponse:
        inv = (
            await db.execute(
                select(Invoice).where(Invoice.id == invoice_id, Invoice.tenant_id == ctx.tenant_id)
            )
        ).scalar_one_or_none()
        if not inv:
            raise NotFoundError("Invoice not found")
        if inv.status in TERMINAL_INVOICE_STATUSES:
            raise ValidationError(f"Invoice is {inv.status}; nothing to pay")
        outstanding = to_money(inv.net_amount) - await verified_sum(db, ctx.tenant_id, inv.id)
        if outstanding <= 0:
            raise ValidationError("Invoice has no outstanding amount")
        tenant = await db.get(Tenant, ctx.tenant_id)
        payee_vpa = (tenant.payee_vpa if tenant else None) or settings.default_payee_vpa
        payee_name = tenant.organization_name if tenant else ""
        return PaymentIntentResponse(
            invoice_id=inv.id,
            payable_to=payee_vpa,
            payee_name=payee_name,
            amount=outstanding,
            reference=inv.invoice_number,
            payment_uri=build_upi_uri(payee_vpa, payee_name, outstanding, inv.invoice_number),
        )

    return await run_in_transaction(db, _work, readonly=True)
