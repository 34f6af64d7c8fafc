from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from app.models.autopay import AutoPayAttempt, AutoPayAttemptStatus


class AutoPayEnableRequest(BaseModel):
    card_id: str


class AutoPayResult(BaseModel):
    """Outcome of one customer's auto-pay run."""
    customer_id: str
    success: bool
    skipped: bool = False  # Nothing pending to charge
    amount: Optional[Decimal] = None
    attempt_number: Optional[int] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None


class AutoPayBatchResult(BaseModel):
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[AutoPayResult] = []


class AutoPayAttemptResponse(BaseModel):
    id: str
    invoice_id: str
    amount: Decimal
    attempt_number: int
    status: AutoPayAttemptStatus
    error_message: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

    @classmethod
    def from_attempt(cls, attempt: AutoPayAttempt) -> "AutoPayAttemptResponse":
        return cls(
            id=str(attempt.id),
            invoice_id=str(attempt.invoice_id),
            amount=attempt.amount,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            error_message=attempt.error_message,
            created_at=attempt.created_at,
            processed_at=attempt.processed_at,
        )


class AutoPayStatusResponse(BaseModel):
    customer_id: str
    enabled: bool
    card_id: Optional[str] = None
    last_attempt: Optional[AutoPayAttemptResponse] = None
