"""
Auto-pay processing - monthly charges against a customer's saved card.

Per customer and billing cycle (the latest pending invoice) this is a small
state machine driven by the stored attempt_number:

    Active --success--> Active
    Active --failure (attempt < max)--> Active, retried on the next run
    Active --failure (attempt == max)--> Disabled (terminal until re-enabled)

The gateway charge happens before, and outside of, the ledger transaction;
only once funds are authorized is the payment applied.
"""

import asyncio
from typing import List, Optional

import structlog

from app.core.config import settings
from app.core.exceptions import AutoPayError, BillingError, CustomerNotFoundError
from app.models.autopay import AutoPayAttempt, AutoPayAttemptStatus
from app.models.customer import Customer
from app.models.payment import PaymentSource
from app.repositories.autopay_repo import AutoPayRepository
from app.repositories.customer_repo import CustomerRepository
from app.schemas.autopay import (
    AutoPayAttemptResponse,
    AutoPayBatchResult,
    AutoPayResult,
    AutoPayStatusResponse,
)
from app.schemas.billing import PaymentMetadata
from app.services.integrations import NotificationKind, Notifier, PaymentGateway
from app.services.payment_service import PaymentService
from app.utils.money import ZERO, format_pesos, format_period

logger = structlog.get_logger(__name__)


class AutoPayService:

    def __init__(
        self,
        customers: CustomerRepository,
        attempts: AutoPayRepository,
        payments: PaymentService,
        gateway: PaymentGateway,
        notifier: Notifier,
        max_attempts: int | None = None,
        customer_delay: float | None = None,
    ):
        self.customers = customers
        self.attempts = attempts
        self.payments = payments
        self.gateway = gateway
        self.notifier = notifier
        self.max_attempts = max_attempts or settings.AUTOPAY_MAX_ATTEMPTS
        self.customer_delay = (
            settings.AUTOPAY_CUSTOMER_DELAY_SECONDS if customer_delay is None else customer_delay
        )

    # ===== Customer-facing =====

    async def get_status(self, customer_id: str) -> AutoPayStatusResponse:
        customer = await self._require_customer(customer_id)
        history = await self.attempts.list_attempts(customer.id, limit=1)
        return AutoPayStatusResponse(
            customer_id=str(customer.id),
            enabled=customer.autopay_enabled,
            card_id=customer.autopay_card_id,
            last_attempt=AutoPayAttemptResponse.from_attempt(history[0]) if history else None,
        )

    async def get_history(self, customer_id: str, limit: int = 10) -> List[AutoPayAttemptResponse]:
        customer = await self._require_customer(customer_id)
        history = await self.attempts.list_attempts(customer.id, limit=limit)
        return [AutoPayAttemptResponse.from_attempt(a) for a in history]

    async def enable(self, customer_id: str, card_id: str) -> Customer:
        if not card_id:
            raise AutoPayError("A card is required to enable auto-pay", customer_id)
        customer = await self.customers.set_autopay(customer_id, True, card_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        logger.info("autopay.enabled", customer_id=str(customer.id), card_id=card_id)
        return customer

    async def disable(self, customer_id: str) -> Customer:
        customer = await self.customers.set_autopay(customer_id, False)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        logger.info("autopay.disabled", customer_id=str(customer.id), reason="customer_request")
        return customer

    # ===== Processing =====

    async def process_customer(self, customer_id) -> AutoPayResult:
        """Charge one customer's latest pending invoice, at most once per run."""
        customer = await self.customers.get_customer(customer_id)
        if customer is None:
            return AutoPayResult(customer_id=str(customer_id), success=False, error="Customer not found")
        if not customer.autopay_enabled:
            return AutoPayResult(customer_id=str(customer.id), success=False, error="Auto-pay not enabled")
        if not customer.autopay_card_id:
            return AutoPayResult(customer_id=str(customer.id), success=False, error="No card configured")

        invoice = await self.attempts.latest_pending_invoice(customer.id)
        if invoice is None:
            logger.info("autopay.nothing_pending", customer_id=str(customer.id))
            return AutoPayResult(customer_id=str(customer.id), success=True, skipped=True)
        if invoice.charge <= ZERO:
            # Nothing to collect; reconciliation will mark it paid
            logger.info("autopay.nothing_to_charge", customer_id=str(customer.id), invoice_id=str(invoice.id))
            return AutoPayResult(customer_id=str(customer.id), success=True, skipped=True)

        attempt_number = await self.attempts.next_attempt_number(customer.id, invoice.id)
        if attempt_number > self.max_attempts:
            logger.info("autopay.max_attempts_reached", customer_id=str(customer.id), attempt=attempt_number)
            return AutoPayResult(
                customer_id=str(customer.id),
                success=False,
                error="Maximum attempts reached",
                attempt_number=attempt_number,
            )

        amount = invoice.charge
        attempt = AutoPayAttempt(
            customer_id=customer.id,
            invoice_id=invoice.id,
            card_id=customer.autopay_card_id,
            amount=amount,
            attempt_number=attempt_number,
        )
        await self.attempts.create_attempt(attempt)

        period = format_period(invoice.period_start)
        logger.info(
            "autopay.charging",
            customer_id=str(customer.id),
            invoice_id=str(invoice.id),
            amount=str(amount),
            attempt=attempt_number,
        )
        authorization = await self.gateway.authorize(
            customer, customer.autopay_card_id, amount, f"Pago automático {period}"
        )

        if not authorization.success:
            return await self._handle_failure(customer, attempt, authorization.message, authorization.model_dump())

        try:
            application = await self.payments.apply_payment(
                customer.id,
                amount,
                PaymentSource.AUTO_PAY,
                PaymentMetadata(
                    transaction_reference=authorization.reference,
                    notes=f"Pago automático {period}",
                ),
            )
        except BillingError as exc:
            # Funds were captured but the ledger rejected the payment
            logger.error(
                "autopay.payment_not_recorded",
                customer_id=str(customer.id),
                reference=authorization.reference,
                error=exc.message,
            )
            await self.attempts.finish_attempt(
                attempt.id,
                AutoPayAttemptStatus.FAILED,
                error_message=f"Charged but not recorded: {exc.message}",
                gateway_response=authorization.model_dump(),
            )
            raise

        await self.attempts.finish_attempt(
            attempt.id,
            AutoPayAttemptStatus.SUCCEEDED,
            payment_id=application.payment.id,
            gateway_response=authorization.model_dump(),
        )
        new_balance = application.reconciliation.new_balance
        await self.notifier.notify(
            customer,
            NotificationKind.AUTOPAY_SUCCEEDED,
            f"Hola {customer.full_name}, tu pago automático de {format_pesos(amount)} "
            f"fue procesado. Boleta: {period}. Nuevo saldo: {format_pesos(new_balance)}.",
        )
        logger.info("autopay.succeeded", customer_id=str(customer.id), payment_id=str(application.payment.id))

        return AutoPayResult(
            customer_id=str(customer.id),
            success=True,
            amount=amount,
            attempt_number=attempt_number,
            payment_id=str(application.payment.id),
        )

    async def _handle_failure(
        self,
        customer: Customer,
        attempt: AutoPayAttempt,
        message: Optional[str],
        gateway_response: dict,
    ) -> AutoPayResult:
        error = message or "Unknown error"
        exhausted = attempt.attempt_number >= self.max_attempts

        await self.attempts.finish_attempt(
            attempt.id,
            AutoPayAttemptStatus.DISABLED if exhausted else AutoPayAttemptStatus.FAILED,
            error_message=error,
            gateway_response=gateway_response,
        )
        logger.error(
            "autopay.attempt_failed",
            customer_id=str(customer.id),
            attempt=attempt.attempt_number,
            error=error,
        )

        if exhausted:
            await self.customers.set_autopay(str(customer.id), False)
            logger.warning(
                "autopay.disabled",
                customer_id=str(customer.id),
                reason="max_attempts",
                last_error=error,
            )
            await self.notifier.notify(
                customer,
                NotificationKind.AUTOPAY_DISABLED,
                f"Hola {customer.full_name}, después de {self.max_attempts} intentos no pudimos "
                "procesar tu pago automático y fue deshabilitado. Paga en el portal y verifica tu tarjeta.",
            )
        else:
            await self.notifier.notify(
                customer,
                NotificationKind.AUTOPAY_FAILED,
                f"Hola {customer.full_name}, no pudimos procesar tu pago automático de "
                f"{format_pesos(attempt.amount)}. Motivo: {error}. Reintentaremos pronto.",
            )

        return AutoPayResult(
            customer_id=str(customer.id),
            success=False,
            amount=attempt.amount,
            attempt_number=attempt.attempt_number,
            error=error,
        )

    async def process_all(self) -> AutoPayBatchResult:
        """Run auto-pay for every enabled customer, one after another."""
        customers = await self.customers.list_autopay_customers()
        logger.info("autopay.batch_started", customers=len(customers))

        batch = AutoPayBatchResult()
        for index, customer in enumerate(customers):
            try:
                result = await self.process_customer(customer.id)
            except BillingError as exc:
                result = AutoPayResult(customer_id=str(customer.id), success=False, error=exc.message)

            batch.results.append(result)
            batch.processed += 1
            if result.skipped:
                batch.skipped += 1
            elif result.success:
                batch.succeeded += 1
            else:
                batch.failed += 1

            # Spacing between customers keeps us under the gateway's rate limit
            if self.customer_delay and index < len(customers) - 1:
                await asyncio.sleep(self.customer_delay)

        logger.info(
            "autopay.batch_completed",
            processed=batch.processed,
            succeeded=batch.succeeded,
            failed=batch.failed,
            skipped=batch.skipped,
        )
        return batch

    async def _require_customer(self, customer_id: str) -> Customer:
        customer = await self.customers.get_customer(customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer
