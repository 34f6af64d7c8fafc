"""
Ledger data access.

The billing core never talks to MongoDB directly. It receives a LedgerStore
and works inside one of its transactions through the TransactionContext
operations below. The Mongo implementation runs each transaction in a client
session with snapshot reads. Writers first bump the customer's ledger_version,
so two writers for the same customer conflict instead of both reading a stale
ledger.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, List, Optional, Protocol

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from app.core.config import settings
from app.core.exceptions import (
    CustomerNotFoundError,
    PersistenceFailureError,
    TransactionConflictError,
)
from app.models.customer import Customer
from app.models.invoice import Invoice, InvoiceStatus
from app.models.payment import Payment, PaymentStatus
from app.utils.money import ZERO, to_decimal

logger = structlog.get_logger(__name__)

WRITE_CONFLICT = 112

# Newest first; ties on period broken by issue date, then insertion order
INVOICE_ORDER = [("period_start", DESCENDING), ("issued_at", DESCENDING), ("_id", DESCENDING)]


class TransactionContext(Protocol):
    """Reads and writes the billing core needs, scoped to one customer."""

    customer: Customer

    async def find_latest_invoice(self) -> Optional[Invoice]: ...

    async def find_invoices(self) -> List[Invoice]: ...

    async def sum_completed_payments_after(self, after: datetime) -> Decimal: ...

    async def update_invoice_status(self, invoice_id: ObjectId, status: InvoiceStatus) -> None: ...

    async def insert_payment(self, payment: Payment) -> Payment: ...

    async def update_payment_notes(self, payment_id: ObjectId, notes: str) -> None: ...

    async def find_payments(self, limit: int = 50) -> List[Payment]: ...


class LedgerStore(Protocol):
    def transaction(self, customer_id: str, lock: bool = True) -> "AsyncIterator[TransactionContext]":
        """
        Async context manager around one atomic unit of work.

        Raises CustomerNotFoundError on entry for unknown customers. Commits on
        clean exit, rolls back on any exception.
        """
        ...


def parse_customer_id(customer_id) -> ObjectId:
    if isinstance(customer_id, ObjectId):
        return customer_id
    if isinstance(customer_id, str) and ObjectId.is_valid(customer_id):
        return ObjectId(customer_id)
    raise CustomerNotFoundError(str(customer_id))


class MongoLedgerContext:
    """TransactionContext over a Motor client session."""

    def __init__(self, db: AsyncIOMotorDatabase, session, customer: Customer):
        self.db = db
        self.session = session
        self.customer = customer
        self.invoices = db["invoices"]
        self.payments = db["payments"]

    async def find_latest_invoice(self) -> Optional[Invoice]:
        doc = await self.invoices.find_one(
            {"customer_id": self.customer.id},
            sort=INVOICE_ORDER,
            session=self.session,
        )
        if doc:
            return Invoice(**doc)
        return None

    async def find_invoices(self) -> List[Invoice]:
        cursor = self.invoices.find(
            {"customer_id": self.customer.id},
            session=self.session,
        ).sort(INVOICE_ORDER)
        return [Invoice(**doc) async for doc in cursor]

    async def sum_completed_payments_after(self, after: datetime) -> Decimal:
        result = await self.payments.aggregate([
            {
                "$match": {
                    "customer_id": self.customer.id,
                    "status": PaymentStatus.COMPLETED.value,
                    "paid_at": {"$gt": after}
                }
            },
            {
                "$group": {
                    "_id": None,
                    "total": {"$sum": "$amount"}
                }
            }
        ], session=self.session).to_list(1)

        if not result:
            return ZERO
        return to_decimal(result[0]["total"])

    async def update_invoice_status(self, invoice_id: ObjectId, status: InvoiceStatus) -> None:
        result = await self.invoices.update_one(
            {"_id": invoice_id, "customer_id": self.customer.id},
            {"$set": {"status": InvoiceStatus(status).value, "updated_at": datetime.now(timezone.utc)}},
            session=self.session,
        )
        if result.matched_count != 1:
            raise PersistenceFailureError(
                f"Invoice {invoice_id} disappeared during reconciliation",
                customer_id=str(self.customer.id),
            )

    async def insert_payment(self, payment: Payment) -> Payment:
        await self.payments.insert_one(payment.to_document(), session=self.session)
        return payment

    async def update_payment_notes(self, payment_id: ObjectId, notes: str) -> None:
        await self.payments.update_one(
            {"_id": payment_id},
            {"$set": {"notes": notes, "updated_at": datetime.now(timezone.utc)}},
            session=self.session,
        )

    async def find_payments(self, limit: int = 50) -> List[Payment]:
        """All payments for the customer, newest first."""
        docs = await self.payments.find(
            {"customer_id": self.customer.id},
            session=self.session,
        ).sort("paid_at", DESCENDING).to_list(limit)
        return [Payment(**doc) for doc in docs]


class MongoLedgerStore:
    """LedgerStore backed by MongoDB multi-document transactions (replica set required)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.customers = db["customers"]

    @asynccontextmanager
    async def transaction(self, customer_id, lock: bool = True) -> AsyncIterator[MongoLedgerContext]:
        oid = parse_customer_id(customer_id)

        try:
            async with await self.db.client.start_session() as session:
                async with session.start_transaction(
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                    max_commit_time_ms=int(settings.TRANSACTION_TIMEOUT_SECONDS * 1000),
                ):
                    customer = await self._load_customer(oid, session, lock)
                    yield MongoLedgerContext(self.db, session, customer)
        except PyMongoError as exc:
            if exc.has_error_label("TransientTransactionError") or (
                isinstance(exc, OperationFailure) and exc.code == WRITE_CONFLICT
            ):
                logger.warning("ledger.transaction_conflict", customer_id=str(oid), error=str(exc))
                raise TransactionConflictError(str(oid), str(exc)) from exc
            logger.error("ledger.persistence_failure", customer_id=str(oid), error=str(exc))
            raise PersistenceFailureError(
                f"Ledger store failure: {exc}", customer_id=str(oid)
            ) from exc

    async def _load_customer(self, oid: ObjectId, session, lock: bool) -> Customer:
        query = {"_id": oid, "is_deleted": False}
        if lock:
            doc = await self.customers.find_one_and_update(
                query,
                {"$inc": {"ledger_version": 1}},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
        else:
            doc = await self.customers.find_one(query, session=session)

        if not doc:
            raise CustomerNotFoundError(str(oid))
        return Customer(**doc)
