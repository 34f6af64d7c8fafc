"""
Contracts for the external collaborators around the billing core.

The core never calls these itself. Callers authorize funds with a
PaymentGateway before applying a payment, and send notifications afterwards.
Real Transbank/Twilio/email clients live outside this service and only need
to satisfy these protocols.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import structlog
from pydantic import BaseModel

from app.models.customer import Customer

logger = structlog.get_logger(__name__)


class AuthorizationResult(BaseModel):
    success: bool
    reference: Optional[str] = None  # Gateway transaction id
    message: Optional[str] = None
    response_code: Optional[int] = None
    raw: Dict[str, Any] = {}


class PaymentGateway(Protocol):
    async def authorize(
        self,
        customer: Customer,
        card_id: str,
        amount: Decimal,
        description: str,
    ) -> AuthorizationResult: ...


class NotificationKind(str, Enum):
    AUTOPAY_SUCCEEDED = "autopay_succeeded"
    AUTOPAY_FAILED = "autopay_failed"
    AUTOPAY_DISABLED = "autopay_disabled"


class Notifier(Protocol):
    async def notify(self, customer: Customer, kind: NotificationKind, message: str) -> None: ...


class UnconfiguredGateway:
    """Declines every charge; used until a real gateway client is wired in."""

    async def authorize(self, customer, card_id, amount, description) -> AuthorizationResult:
        logger.warning("gateway.unconfigured", customer_id=str(customer.id))
        return AuthorizationResult(success=False, message="Payment gateway not configured")


class LogNotifier:
    """Writes notifications to the log instead of sending them."""

    async def notify(self, customer: Customer, kind: NotificationKind, message: str) -> None:
        logger.info(
            "notification.logged",
            customer_id=str(customer.id),
            kind=kind.value,
            email=customer.email,
            phone=customer.phone,
            message=message,
        )
