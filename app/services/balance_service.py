"""
Balance calculation - single source of truth for what a customer owes.

Each invoice's cumulative_total already carries the running balance at the
moment it was issued (previous balance + this month's charge). So the current
balance is:

    latest invoice's cumulative_total - completed payments after its issue date

never re-derived by summing unpaid invoices, which would double count the
carried-forward debt.
"""

from decimal import Decimal

from app.models.invoice import Invoice
from app.repositories.ledger_repo import TransactionContext
from app.schemas.billing import LedgerPosition
from app.utils.money import ZERO


def compute_position(baseline: Invoice | None, payments_after_baseline: Decimal) -> LedgerPosition:
    """
    Split baseline - payments into a non-negative balance and a non-negative credit.

    Exactly one of the two can be non-zero.
    """
    if baseline is None:
        return LedgerPosition(balance=ZERO, available_credit=ZERO)

    baseline_total = baseline.cumulative_total
    return LedgerPosition(
        balance=max(ZERO, baseline_total - payments_after_baseline),
        available_credit=max(ZERO, payments_after_baseline - baseline_total),
        baseline_invoice_id=str(baseline.id),
        baseline_total=baseline_total,
        payments_after_baseline=payments_after_baseline,
    )


async def get_ledger_position(ctx: TransactionContext) -> LedgerPosition:
    """Balance, available credit and the baseline invoice they were computed from."""
    baseline = await ctx.find_latest_invoice()
    if baseline is None:
        return compute_position(None, ZERO)

    paid = await ctx.sum_completed_payments_after(baseline.issued_at)
    return compute_position(baseline, paid)


async def get_current_balance(ctx: TransactionContext) -> Decimal:
    """Current outstanding balance (always >= 0)."""
    position = await get_ledger_position(ctx)
    return position.balance
