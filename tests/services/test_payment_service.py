import asyncio
import pytest
from decimal import Decimal
from unittest.mock import patch

from app.core.exceptions import (
    CustomerNotFoundError,
    InvalidAmountError,
    PersistenceFailureError,
    TransactionTimeoutError,
)
from app.models.customer import Customer
from app.models.invoice import InvoiceStatus
from app.models.payment import PaymentSource, PaymentStatus
from app.schemas.billing import PaymentMetadata
from app.services.billing_service import BillingService
from app.services.payment_service import PaymentService, validate_amount, with_credit_note
from app.utils.money import format_pesos


@pytest.mark.asyncio
async def test_full_payment_marks_invoice_paid(store, customer, make_invoice):
    invoice = make_invoice(1, 10000)
    service = PaymentService(store)

    application = await service.apply_payment(str(customer.id), 10000, PaymentSource.MANUAL)

    assert application.reconciliation.new_balance == Decimal("0")
    assert application.reconciliation.updated_count == 1
    assert application.reconciliation.changes[0].new_status == InvoiceStatus.PAID
    assert store.invoice_status(invoice) == InvoiceStatus.PAID

    payments = store.customer_payments(customer)
    assert len(payments) == 1
    assert payments[0].amount == Decimal("10000")
    assert payments[0].status == PaymentStatus.COMPLETED
    assert payments[0].source == PaymentSource.MANUAL


@pytest.mark.asyncio
async def test_partial_payment_leaves_newest_pending(store, customer, make_invoice):
    jan = make_invoice(1, 5000, cumulative=5000)
    feb = make_invoice(2, 5000, cumulative=10000)

    application = await PaymentService(store).apply_payment(customer.id, "7000", PaymentSource.MANUAL)

    assert application.reconciliation.new_balance == Decimal("3000")
    assert store.invoice_status(feb) == InvoiceStatus.PENDING
    assert store.invoice_status(jan) == InvoiceStatus.PAID


@pytest.mark.asyncio
async def test_overpayment_appends_credit_note(store, customer, make_invoice):
    invoice = make_invoice(1, 10000)

    application = await PaymentService(store).apply_payment(
        customer.id,
        15000,
        PaymentSource.ONLINE_GATEWAY,
        PaymentMetadata(transaction_reference="TBK-1", notes="Pago en línea"),
    )

    assert application.reconciliation.new_balance == Decimal("0")
    assert application.reconciliation.available_credit == Decimal("5000")
    assert store.invoice_status(invoice) == InvoiceStatus.PAID

    stored = store.customer_payments(customer)[0]
    assert stored.notes.startswith("Pago en línea\n[Saldo a favor:")
    assert "5.000" in stored.notes
    assert stored.notes == application.payment.notes
    # Numeric fields untouched by the note
    assert stored.amount == Decimal("15000")


@pytest.mark.asyncio
async def test_credit_note_is_not_duplicated(store, customer, make_invoice):
    make_invoice(1, 1000)
    service = PaymentService(store)

    await service.apply_payment(customer.id, 2000, PaymentSource.MANUAL)
    second = await service.apply_payment(
        customer.id, 500, PaymentSource.MANUAL, PaymentMetadata(notes="[Saldo a favor: $1.000]")
    )

    assert second.payment.notes == "[Saldo a favor: $1.000]"
    assert second.reconciliation.available_credit == Decimal("1500")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [
    0, -100, "0", "-1", "abc", None, float("nan"), True,
    "1.0000000000000000000000000000000000001",  # more digits than Decimal128 holds
    "1e7000",  # beyond the Decimal128 exponent range
])
async def test_invalid_amount_rejected_before_any_write(store, customer, make_invoice, amount):
    make_invoice(1, 10000)

    with pytest.raises(InvalidAmountError):
        await PaymentService(store).apply_payment(customer.id, amount, PaymentSource.MANUAL)

    assert store.customer_payments(customer) == []


@pytest.mark.asyncio
async def test_unknown_customer_rejected(store):
    with pytest.raises(CustomerNotFoundError):
        await PaymentService(store).apply_payment(
            "000000000000000000000000", 1000, PaymentSource.MANUAL
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("failing_step", ["update_invoice_status", "update_payment_notes", "find_invoices"])
async def test_failure_mid_application_rolls_back_everything(store, customer, make_invoice, failing_step):
    invoice = make_invoice(1, 10000)
    store.fail_on = failing_step

    with pytest.raises(PersistenceFailureError):
        await PaymentService(store).apply_payment(customer.id, 15000, PaymentSource.MANUAL)

    assert store.customer_payments(customer) == []
    assert store.invoice_status(invoice) == InvoiceStatus.PENDING

    store.fail_on = None
    assert await BillingService(store).get_current_balance(customer.id) == Decimal("10000")


@pytest.mark.asyncio
async def test_timeout_rolls_back(store, customer, make_invoice):
    invoice = make_invoice(1, 10000)
    store.delay = 0.05

    with pytest.raises(TransactionTimeoutError) as exc_info:
        await PaymentService(store, timeout=0.01).apply_payment(customer.id, 10000, PaymentSource.MANUAL)

    assert exc_info.value.error_code == "TRANSACTION_TIMEOUT"
    assert store.customer_payments(customer) == []
    assert store.invoice_status(invoice) == InvoiceStatus.PENDING


@pytest.mark.asyncio
async def test_concurrent_payments_for_same_customer_are_serialized(store, customer, make_invoice):
    make_invoice(1, 10000)
    service = PaymentService(store)

    await asyncio.gather(
        service.apply_payment(customer.id, 1000, PaymentSource.MANUAL),
        service.apply_payment(customer.id, 2000, PaymentSource.AUTO_PAY),
    )

    assert len(store.customer_payments(customer)) == 2
    assert await BillingService(store).get_current_balance(customer.id) == Decimal("7000")


@pytest.mark.asyncio
async def test_concurrent_payments_for_different_customers(store, customer, make_invoice):
    other = store.add_customer(Customer(customer_number="10002", full_name="Juan Pérez"))
    make_invoice(1, 10000)
    make_invoice(1, 8000, owner=other)
    service = PaymentService(store)

    first, second = await asyncio.gather(
        service.apply_payment(customer.id, 10000, PaymentSource.MANUAL),
        service.apply_payment(other.id, 3000, PaymentSource.MANUAL),
    )

    assert first.reconciliation.new_balance == Decimal("0")
    assert second.reconciliation.new_balance == Decimal("5000")


@pytest.mark.asyncio
async def test_metadata_is_recorded(store, customer, make_invoice):
    make_invoice(1, 10000)

    application = await PaymentService(store).apply_payment(
        customer.id,
        4000,
        PaymentSource.MANUAL,
        PaymentMetadata(transaction_reference="REC-77", notes="Caja oficina", operator="operator-1"),
    )

    assert application.payment.transaction_reference == "REC-77"
    assert application.payment.notes == "Caja oficina"
    assert application.payment.operator == "operator-1"


@pytest.mark.asyncio
async def test_applied_payment_is_logged(store, customer, make_invoice):
    make_invoice(1, 10000)

    with patch("app.services.payment_service.logger") as logger:
        await PaymentService(store).apply_payment(customer.id, 4000, PaymentSource.MANUAL)

    assert logger.info.call_args[0][0] == "payment.applied"
    assert logger.info.call_args[1]["balance"] == "6000"


def test_validate_amount_accepts_decimal_strings():
    assert validate_amount("1500.50") == Decimal("1500.50")
    assert validate_amount(0.1) == Decimal("0.1")


def test_with_credit_note_on_empty_notes():
    assert with_credit_note(None, Decimal("2500")) == f"[Saldo a favor: {format_pesos(Decimal('2500'))}]"
