import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from main import app
from app.core.auth import create_access_token
from app.core.config import settings
from app.core.exceptions import CustomerNotFoundError, PersistenceFailureError
from app.db.session import get_ledger_store
from app.models.customer import Customer
from app.models.invoice import Invoice, InvoiceStatus
from app.models.payment import Payment, PaymentStatus
from app.repositories.ledger_repo import parse_customer_id

# Mongo-backed tests need a replica set (transactions)
TEST_MONGODB_URI = os.getenv("MONGODB_URI")
TEST_MONGODB_DB = "aguas_billing_test"


class InMemoryLedgerContext:
    """TransactionContext over plain dicts; yields to the loop on every call."""

    def __init__(self, store: "InMemoryLedgerStore", customer: Customer):
        self.store = store
        self.customer = customer

    @property
    def _invoices(self):
        return self.store.invoices[self.customer.id]

    @property
    def _payments(self):
        return self.store.payments[self.customer.id]

    async def _step(self, operation: str):
        await asyncio.sleep(self.store.delay)
        if self.store.fail_on == operation:
            raise PersistenceFailureError(f"Simulated failure in {operation}", str(self.customer.id))

    async def find_latest_invoice(self):
        await self._step("find_latest_invoice")
        invoices = await self.find_invoices()
        return invoices[0] if invoices else None

    async def find_invoices(self):
        await self._step("find_invoices")
        invoices = [i.model_copy(deep=True) for i in self._invoices.values()]
        return sorted(
            invoices,
            key=lambda i: (i.period_start, i.issued_at, i.id),
            reverse=True,
        )

    async def sum_completed_payments_after(self, after):
        await self._step("sum_completed_payments_after")
        return sum(
            (
                p.amount for p in self._payments.values()
                if p.status == PaymentStatus.COMPLETED and p.paid_at > after
            ),
            Decimal("0"),
        )

    async def update_invoice_status(self, invoice_id, status):
        await self._step("update_invoice_status")
        self._invoices[invoice_id].status = InvoiceStatus(status).value

    async def insert_payment(self, payment):
        await self._step("insert_payment")
        self._payments[payment.id] = payment.model_copy(deep=True)
        return payment

    async def update_payment_notes(self, payment_id, notes):
        await self._step("update_payment_notes")
        self._payments[payment_id].notes = notes

    async def find_payments(self, limit=50):
        await self._step("find_payments")
        payments = sorted(self._payments.values(), key=lambda p: p.paid_at, reverse=True)
        return [p.model_copy(deep=True) for p in payments[:limit]]


class InMemoryLedgerStore:
    """
    LedgerStore fake with real transaction semantics:
    per-customer lock for writers and rollback of everything on any exception.
    """

    def __init__(self):
        self.customers = {}
        self.invoices = {}
        self.payments = {}
        self.locks = {}
        self.fail_on = None
        self.delay = 0

    def add_customer(self, customer: Customer) -> Customer:
        self.customers[customer.id] = customer
        self.invoices.setdefault(customer.id, {})
        self.payments.setdefault(customer.id, {})
        self.locks.setdefault(customer.id, asyncio.Lock())
        return customer

    def add_invoice(self, invoice: Invoice) -> Invoice:
        self.invoices[invoice.customer_id][invoice.id] = invoice
        return invoice

    def add_payment(self, payment: Payment) -> Payment:
        self.payments[payment.customer_id][payment.id] = payment
        return payment

    def invoice_status(self, invoice: Invoice) -> str:
        return self.invoices[invoice.customer_id][invoice.id].status

    def customer_payments(self, customer: Customer):
        return list(self.payments[customer.id].values())

    @asynccontextmanager
    async def transaction(self, customer_id, lock: bool = True):
        oid = parse_customer_id(customer_id)
        customer = self.customers.get(oid)
        if customer is None:
            raise CustomerNotFoundError(str(oid))

        if lock:
            await self.locks[oid].acquire()
        snapshot_invoices = {k: v.model_copy(deep=True) for k, v in self.invoices[oid].items()}
        snapshot_payments = {k: v.model_copy(deep=True) for k, v in self.payments[oid].items()}
        try:
            yield InMemoryLedgerContext(self, customer)
        except BaseException:
            self.invoices[oid] = snapshot_invoices
            self.payments[oid] = snapshot_payments
            raise
        finally:
            if lock:
                self.locks[oid].release()


def utc(year, month, day=1):
    return datetime(year, month, day, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def customer(store):
    return store.add_customer(Customer(
        customer_number="10001",
        full_name="María González",
        email="maria@example.com",
        phone="+56911111111",
    ))


@pytest.fixture
def make_invoice(store, customer):
    """Issue an invoice for a month of 2025 (issued on the 5th of the next month)."""
    def _make(month, charge, cumulative=None, status=InvoiceStatus.PENDING, issued_at=None, owner=None, due_date=None):
        owner = owner or customer
        next_month = utc(2025, month + 1, 5) if month < 12 else utc(2026, 1, 5)
        invoice = Invoice(
            customer_id=owner.id,
            folio=f"F-{month:02d}",
            period_start=utc(2025, month, 1),
            period_end=utc(2025, month, 28),
            issued_at=issued_at or next_month,
            due_date=due_date or next_month.replace(day=20),
            monthly_charge=Decimal(charge) if charge is not None else None,
            cumulative_total=Decimal(cumulative if cumulative is not None else charge),
            status=status,
        )
        return store.add_invoice(invoice)
    return _make


def _collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock()
    collection.update_one = AsyncMock()
    collection.find_one_and_update = AsyncMock(return_value=None)
    return collection


@pytest.fixture
def mock_db():
    """MagicMock database; db["name"] returns a collection with AsyncMock operations."""
    collections = {
        name: _collection()
        for name in ("customers", "invoices", "payments", "autopay_attempts")
    }
    db = MagicMock()
    db.__getitem__.side_effect = collections.__getitem__
    return db


@pytest_asyncio.fixture
async def test_db() -> AsyncIOMotorDatabase:
    """Real MongoDB database (replica set) for repository tests."""
    if not TEST_MONGODB_URI:
        pytest.skip("MONGODB_URI not set")
    client = AsyncIOMotorClient(TEST_MONGODB_URI, tz_aware=True)
    db = client[TEST_MONGODB_DB]

    await client.drop_database(TEST_MONGODB_DB)

    yield db

    await client.drop_database(TEST_MONGODB_DB)
    client.close()


@pytest.fixture
def valid_token():
    return create_access_token("operator-1")


@pytest.fixture
def auth_headers(valid_token):
    return {"Authorization": f"Bearer {valid_token}"}


@pytest.fixture
def gateway_headers():
    return {"X-Gateway-Secret": settings.GATEWAY_WEBHOOK_SECRET}


@pytest.fixture
def test_client(store):
    """TestClient wired to the in-memory store; startup (Mongo) is not run."""
    app.dependency_overrides[get_ledger_store] = lambda: store
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
