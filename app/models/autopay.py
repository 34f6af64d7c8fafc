"""
Auto-pay attempt model.

One row per charge attempt against a customer's saved card for one invoice.
attempt_number counts from 1 per (customer, invoice); after the last allowed
failure the attempt is stored as DISABLED and the customer's auto-pay is
switched off.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from app.models.base import MongoModel, PyObjectId, Money


class AutoPayAttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DISABLED = "disabled"


class AutoPayAttempt(MongoModel):
    customer_id: PyObjectId
    invoice_id: PyObjectId
    card_id: str
    amount: Money
    attempt_number: int
    status: AutoPayAttemptStatus = AutoPayAttemptStatus.PENDING

    error_message: Optional[str] = None
    payment_id: Optional[PyObjectId] = None
    gateway_response: Optional[dict[str, Any]] = None
    processed_at: Optional[datetime] = None
