"""
Payment model - append-only record of money received.

Only COMPLETED payments count toward a customer's balance. A completed payment
is never mutated except for its informational notes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import Field

from app.models.base import MongoModel, PyObjectId, Money


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class PaymentSource(str, Enum):
    MANUAL = "manual"
    AUTO_PAY = "auto_pay"
    ONLINE_GATEWAY = "online_gateway"


class Payment(MongoModel):
    customer_id: PyObjectId
    amount: Money  # > 0
    paid_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: PaymentStatus = PaymentStatus.COMPLETED
    source: PaymentSource

    transaction_reference: Optional[str] = None  # Gateway or bank reference
    notes: Optional[str] = None
    operator: Optional[str] = None  # Who registered it (manual entries)
