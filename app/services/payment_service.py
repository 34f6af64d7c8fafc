"""
Payment application - record a payment and reconcile as one atomic unit.

Used by manual payment entry, auto-pay and online gateway callbacks alike;
the source is stored for display and audit only.
"""

import asyncio
from decimal import Decimal, DecimalException
from typing import Any, Optional

import structlog
from bson.decimal128 import Decimal128

from app.core.config import settings
from app.core.exceptions import InvalidAmountError, TransactionTimeoutError
from app.models.payment import Payment, PaymentSource, PaymentStatus
from app.repositories.ledger_repo import LedgerStore
from app.schemas.billing import PaymentApplication, PaymentMetadata
from app.services.reconciliation_service import reconcile
from app.utils.money import ZERO, format_pesos, to_decimal

logger = structlog.get_logger(__name__)

CREDIT_NOTE_LABEL = "Saldo a favor"


def validate_amount(amount: Any) -> Decimal:
    value = to_decimal(amount)
    if not isinstance(value, Decimal) or not value.is_finite() or value <= ZERO:
        raise InvalidAmountError(amount)
    try:
        # Must fit a BSON Decimal128 exactly
        Decimal128(value)
    except DecimalException:
        raise InvalidAmountError(amount)
    return value


def with_credit_note(notes: Optional[str], credit: Decimal) -> str:
    """Append the overpayment note unless one is already there."""
    current = notes or ""
    if CREDIT_NOTE_LABEL in current:
        return current
    return f"{current}\n[{CREDIT_NOTE_LABEL}: {format_pesos(credit)}]".strip()


class PaymentService:

    def __init__(self, store: LedgerStore, timeout: float | None = None):
        self.store = store
        self.timeout = settings.TRANSACTION_TIMEOUT_SECONDS if timeout is None else timeout

    async def apply_payment(
        self,
        customer_id,
        amount: Any,
        source: PaymentSource,
        metadata: Optional[PaymentMetadata] = None,
    ) -> PaymentApplication:
        """
        Insert a completed payment and reconcile the customer's invoices.

        All-or-nothing: either the payment row and every resulting status
        change are committed, or none are. Not idempotent; every call creates
        a new payment, so callers retrying after a failure must dedupe on
        their own key.

        Raises:
            InvalidAmountError: amount <= 0 (nothing is written)
            CustomerNotFoundError: unknown customer (nothing is written)
            TransactionConflictError: concurrent write, retry the whole call
            PersistenceFailureError: store failure or timeout, rolled back
        """
        value = validate_amount(amount)
        metadata = metadata or PaymentMetadata()

        try:
            application = await asyncio.wait_for(
                self._apply(customer_id, value, PaymentSource(source), metadata),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("payment.timeout", customer_id=str(customer_id), timeout=self.timeout)
            raise TransactionTimeoutError(str(customer_id), self.timeout)

        logger.info(
            "payment.applied",
            customer_id=str(customer_id),
            payment_id=str(application.payment.id),
            amount=str(value),
            source=application.payment.source,
            balance=str(application.reconciliation.new_balance),
            credit=str(application.reconciliation.available_credit),
            invoices_updated=application.reconciliation.updated_count,
        )
        return application

    async def _apply(
        self,
        customer_id,
        amount: Decimal,
        source: PaymentSource,
        metadata: PaymentMetadata,
    ) -> PaymentApplication:
        async with self.store.transaction(customer_id, lock=True) as ctx:
            payment = Payment(
                customer_id=ctx.customer.id,
                amount=amount,
                status=PaymentStatus.COMPLETED,
                source=source,
                transaction_reference=metadata.transaction_reference,
                notes=metadata.notes,
                operator=metadata.operator,
            )
            await ctx.insert_payment(payment)

            reconciliation = await reconcile(ctx)

            if reconciliation.available_credit > ZERO:
                notes = with_credit_note(payment.notes, reconciliation.available_credit)
                if notes != payment.notes:
                    await ctx.update_payment_notes(payment.id, notes)
                    payment.notes = notes

        return PaymentApplication(payment=payment, reconciliation=reconciliation)
