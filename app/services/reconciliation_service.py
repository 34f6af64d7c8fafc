"""
Reverse-FIFO reconciliation of invoice statuses.

Payments settle the newest debt first. Walking invoices from newest to oldest
and accumulating their monthly charges:

- while the accumulated charges stay within the current balance, the invoice
  is fully owed -> pending
- the invoice where the accumulation crosses the balance is partly owed
  -> pending
- everything older is covered by payments received -> paid

No per-invoice allocation is stored; statuses are recomputed from the ledger
every time, which makes reconcile() idempotent.
"""

from decimal import Decimal
from typing import Iterable, List, NamedTuple

import structlog

from app.models.invoice import Invoice, InvoiceStatus
from app.repositories.ledger_repo import TransactionContext
from app.schemas.billing import (
    InvoiceStatusChange,
    PartialPaymentInfo,
    PartialPaymentMap,
    ReconciliationResult,
)
from app.services.balance_service import get_ledger_position
from app.utils.money import ZERO

logger = structlog.get_logger(__name__)


class InvoiceCoverage(NamedTuple):
    invoice: Invoice
    status: InvoiceStatus
    amount_owed: Decimal

    @property
    def partially_paid(self) -> bool:
        return ZERO < self.amount_owed < self.invoice.charge


def walk_invoices(invoices: Iterable[Invoice], balance: Decimal) -> List[InvoiceCoverage]:
    """
    Assign status and amount owed to invoices given newest first.

    Status and amount come from the same walk: amount_owed > 0 iff pending.
    An invoice with no charge owes nothing and is paid, even when it sits
    between pending invoices. Monotonic coverage (once paid, everything
    older is paid) therefore holds only among invoices with a charge.
    """
    coverage = []
    cumulative = ZERO

    for invoice in invoices:
        charge = invoice.charge
        cumulative += charge
        debt_before = cumulative - charge

        if charge <= ZERO:
            status = InvoiceStatus.PAID
        elif cumulative <= balance:
            status = InvoiceStatus.PENDING
        elif debt_before < balance:
            # Straddles the balance: partly covered by payments
            status = InvoiceStatus.PENDING
        else:
            status = InvoiceStatus.PAID

        if status == InvoiceStatus.PENDING:
            amount_owed = min(balance - debt_before, charge)
        else:
            amount_owed = ZERO

        coverage.append(InvoiceCoverage(invoice, status, amount_owed))

    return coverage


def _warn_backdated(invoices: List[Invoice]) -> None:
    # invoices[0] is the baseline; anything issued after it but sorted below
    # it is a backdated correction that the baseline does not include.
    if not invoices:
        return
    baseline = invoices[0]
    for invoice in invoices[1:]:
        if invoice.issued_at > baseline.issued_at:
            logger.warning(
                "ledger.backdated_invoice",
                customer_id=str(baseline.customer_id),
                invoice_id=str(invoice.id),
                baseline_invoice_id=str(baseline.id),
            )


async def reconcile(ctx: TransactionContext) -> ReconciliationResult:
    """
    Recompute and persist pending/paid for every invoice of the customer.

    Only invoices whose status actually changes are written. A run with
    nothing to change is a normal result with zero changes.
    """
    position = await get_ledger_position(ctx)
    invoices = await ctx.find_invoices()
    _warn_backdated(invoices)

    result = ReconciliationResult(
        new_balance=position.balance,
        available_credit=position.available_credit,
    )

    for item in walk_invoices(invoices, position.balance):
        if item.status == InvoiceStatus.PAID:
            result.paid_count += 1
        else:
            result.pending_count += 1

        if item.invoice.status != item.status:
            await ctx.update_invoice_status(item.invoice.id, item.status)
            result.changes.append(InvoiceStatusChange(
                invoice_id=str(item.invoice.id),
                old_status=item.invoice.status,
                new_status=item.status,
                amount=item.invoice.charge,
            ))

    result.updated_count = len(result.changes)

    logger.info(
        "reconciliation.completed",
        customer_id=str(ctx.customer.id),
        updated=result.updated_count,
        paid=result.paid_count,
        pending=result.pending_count,
        balance=str(result.new_balance),
        credit=str(result.available_credit),
    )
    return result


async def get_partial_payment_map(ctx: TransactionContext) -> PartialPaymentMap:
    """How much of each invoice's own charge is still owed, for display."""
    position = await get_ledger_position(ctx)
    invoices = await ctx.find_invoices()

    return PartialPaymentMap(
        current_balance=position.balance,
        invoices={
            str(item.invoice.id): PartialPaymentInfo(
                amount_owed=item.amount_owed,
                partially_paid=item.partially_paid,
            )
            for item in walk_invoices(invoices, position.balance)
        },
    )
