from decimal import Decimal
from typing import List, Optional
from datetime import datetime

from app.models.invoice import Invoice, InvoiceStatus
from app.models.payment import Payment
from app.repositories.ledger_repo import LedgerStore
from app.schemas.billing import (
    AccountStatus,
    BalanceResponse,
    InvoiceListResponse,
    InvoiceResponse,
    LedgerPosition,
    PartialPaymentInfo,
    PartialPaymentMap,
    ReconciliationResult,
)
from app.services import balance_service, reconciliation_service
from app.utils.money import ZERO, format_pesos


def next_due_date(invoices: List[Invoice]) -> Optional[datetime]:
    """Earliest due date among pending invoices."""
    due_dates = [
        invoice.due_date
        for invoice in invoices
        if invoice.status == InvoiceStatus.PENDING and invoice.due_date is not None
    ]
    return min(due_dates) if due_dates else None


class BillingService:
    """Customer-scoped billing reads and reconciliation over a LedgerStore."""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_current_balance(self, customer_id) -> Decimal:
        async with self.store.transaction(customer_id, lock=False) as ctx:
            return await balance_service.get_current_balance(ctx)

    async def get_ledger_position(self, customer_id) -> LedgerPosition:
        async with self.store.transaction(customer_id, lock=False) as ctx:
            return await balance_service.get_ledger_position(ctx)

    async def reconcile(self, customer_id) -> ReconciliationResult:
        """Run reconciliation in its own writing transaction."""
        async with self.store.transaction(customer_id, lock=True) as ctx:
            return await reconciliation_service.reconcile(ctx)

    async def get_partial_payment_map(self, customer_id) -> PartialPaymentMap:
        async with self.store.transaction(customer_id, lock=False) as ctx:
            return await reconciliation_service.get_partial_payment_map(ctx)

    async def get_account_summary(self, customer_id) -> BalanceResponse:
        async with self.store.transaction(customer_id, lock=False) as ctx:
            position = await balance_service.get_ledger_position(ctx)
            invoices = await ctx.find_invoices()

        return BalanceResponse(
            customer_id=str(customer_id),
            balance=position.balance,
            balance_formatted=format_pesos(position.balance),
            available_credit=position.available_credit,
            next_due_date=next_due_date(invoices),
            account_status=AccountStatus.DELINQUENT if position.balance > ZERO else AccountStatus.CURRENT,
        )

    async def list_invoices(self, customer_id) -> InvoiceListResponse:
        """Invoices newest first with the amount still owed on each."""
        async with self.store.transaction(customer_id, lock=False) as ctx:
            position = await balance_service.get_ledger_position(ctx)
            invoices = await ctx.find_invoices()

        coverage = reconciliation_service.walk_invoices(invoices, position.balance)
        return InvoiceListResponse(
            current_balance=position.balance,
            invoices=[
                InvoiceResponse.from_invoice(
                    item.invoice,
                    PartialPaymentInfo(
                        amount_owed=item.amount_owed,
                        partially_paid=item.partially_paid,
                    ),
                )
                for item in coverage
            ],
        )

    async def list_payments(self, customer_id, limit: int = 50) -> List[Payment]:
        async with self.store.transaction(customer_id, lock=False) as ctx:
            return await ctx.find_payments(limit)
