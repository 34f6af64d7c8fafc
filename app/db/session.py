from fastapi import Depends
from app.db.mongo import get_db
from app.repositories.autopay_repo import AutoPayRepository
from app.repositories.customer_repo import CustomerRepository
from app.repositories.ledger_repo import LedgerStore, MongoLedgerStore
from app.services.autopay_service import AutoPayService
from app.services.billing_service import BillingService
from app.services.integrations import LogNotifier, Notifier, PaymentGateway, UnconfiguredGateway
from app.services.payment_service import PaymentService


def get_ledger_store(db = Depends(get_db)) -> LedgerStore:
    return MongoLedgerStore(db)


def get_billing_service(store: LedgerStore = Depends(get_ledger_store)) -> BillingService:
    return BillingService(store)


def get_payment_service(store: LedgerStore = Depends(get_ledger_store)) -> PaymentService:
    return PaymentService(store)


def get_payment_gateway() -> PaymentGateway:
    return UnconfiguredGateway()


def get_notifier() -> Notifier:
    return LogNotifier()


def get_autopay_service(
    db = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
) -> AutoPayService:
    return AutoPayService(
        CustomerRepository(db),
        AutoPayRepository(db),
        payments,
        gateway,
        notifier,
    )
