from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict

from pydantic import BaseModel, Field, ConfigDict

from app.models.base import Money
from app.models.invoice import Invoice, InvoiceStatus
from app.models.payment import Payment, PaymentSource, PaymentStatus


class AccountStatus(str, Enum):
    CURRENT = "current"
    DELINQUENT = "delinquent"


class LedgerPosition(BaseModel):
    """Balance derived from the baseline invoice and the payments after it."""
    balance: Money
    available_credit: Money
    baseline_invoice_id: Optional[str] = None
    baseline_total: Money = Decimal("0")
    payments_after_baseline: Money = Decimal("0")


class InvoiceStatusChange(BaseModel):
    invoice_id: str
    old_status: InvoiceStatus
    new_status: InvoiceStatus
    amount: Money  # The invoice's monthly charge


class ReconciliationResult(BaseModel):
    updated_count: int = 0
    paid_count: int = 0
    pending_count: int = 0
    new_balance: Money = Decimal("0")
    available_credit: Money = Decimal("0")
    changes: List[InvoiceStatusChange] = []


class PartialPaymentInfo(BaseModel):
    amount_owed: Money
    partially_paid: bool


class PartialPaymentMap(BaseModel):
    """amount owed per invoice id, plus the balance the walk started from."""
    current_balance: Money
    invoices: Dict[str, PartialPaymentInfo] = {}


class PaymentMetadata(BaseModel):
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    operator: Optional[str] = None


class PaymentApplication(BaseModel):
    payment: Payment
    reconciliation: ReconciliationResult

    def payment_response(self) -> "PaymentResponse":
        return PaymentResponse.from_payment(self.payment)


# ===== API =====

class PaymentCreate(BaseModel):
    """Manual payment entry from the admin panel."""
    amount: Money
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None


class GatewayPaymentCallback(BaseModel):
    """Notification from the online payment gateway after authorization."""
    customer_id: str
    amount: Money
    transaction_reference: str
    authorized: bool
    response_code: Optional[int] = None


class PaymentResponse(BaseModel):
    id: str
    customer_id: str
    amount: Decimal
    paid_at: datetime
    status: PaymentStatus
    source: PaymentSource
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    operator: Optional[str] = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=str(payment.id),
            customer_id=str(payment.customer_id),
            amount=payment.amount,
            paid_at=payment.paid_at,
            status=payment.status,
            source=payment.source,
            transaction_reference=payment.transaction_reference,
            notes=payment.notes,
            operator=payment.operator,
        )


class PaymentApplicationResponse(BaseModel):
    payment: PaymentResponse
    reconciliation: ReconciliationResult


class BalanceResponse(BaseModel):
    customer_id: str
    balance: Decimal
    balance_formatted: str
    available_credit: Decimal
    next_due_date: Optional[datetime] = None
    account_status: AccountStatus


class InvoiceResponse(BaseModel):
    """Invoice as shown to the customer: this month's charge, not the cumulative."""
    id: str
    folio: Optional[str] = None
    period_start: datetime
    period_end: datetime
    issued_at: datetime
    due_date: Optional[datetime] = None
    monthly_charge: Decimal
    cumulative_total: Decimal
    status: InvoiceStatus
    amount_owed: Decimal
    partially_paid: bool

    model_config = ConfigDict(use_enum_values=True)

    @classmethod
    def from_invoice(cls, invoice: Invoice, info: Optional[PartialPaymentInfo]) -> "InvoiceResponse":
        return cls(
            id=str(invoice.id),
            folio=invoice.folio,
            period_start=invoice.period_start,
            period_end=invoice.period_end,
            issued_at=invoice.issued_at,
            due_date=invoice.due_date,
            monthly_charge=invoice.charge,
            cumulative_total=invoice.cumulative_total,
            status=invoice.status,
            amount_owed=info.amount_owed if info else Decimal("0"),
            partially_paid=info.partially_paid if info else False,
        )


class InvoiceListResponse(BaseModel):
    current_balance: Decimal
    invoices: List[InvoiceResponse] = Field(default_factory=list)
