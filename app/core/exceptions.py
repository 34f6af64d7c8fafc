"""
Billing exceptions.

Every error raised by the ledger core derives from BillingError so the API
layer can turn it into a response with a single handler.
"""

from typing import Any


class BillingError(Exception):
    """
    Base billing error.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable code for API responses
        status_code: HTTP status code for this error type
        context: Extra data about the failure
        recovery_hint: Suggested action for the caller
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int = 400,
        context: dict[str, Any] | None = None,
        recovery_hint: str | None = None,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.status_code = status_code
        self.context = context or {}
        self.recovery_hint = recovery_hint
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "status_code": self.status_code,
            "context": self.context,
            "recovery_hint": self.recovery_hint,
        }


class InvalidAmountError(BillingError):
    """Payment amount is zero, negative or not a number."""

    def __init__(self, amount: Any) -> None:
        super().__init__(
            f"Payment amount must be greater than zero, got {amount}",
            "INVALID_AMOUNT",
            status_code=422,
            context={"amount": str(amount)},
            recovery_hint="Send a positive amount",
        )


class CustomerNotFoundError(BillingError):
    def __init__(self, customer_id: str) -> None:
        super().__init__(
            f"Customer {customer_id} not found",
            "CUSTOMER_NOT_FOUND",
            status_code=404,
            context={"customer_id": str(customer_id)},
            recovery_hint="Verify the customer ID",
        )


class TransactionConflictError(BillingError):
    """Another transaction wrote the same customer's ledger concurrently."""

    def __init__(self, customer_id: str, detail: str | None = None) -> None:
        context = {"customer_id": str(customer_id)}
        if detail:
            context["detail"] = detail
        super().__init__(
            f"Concurrent ledger update for customer {customer_id}",
            "TRANSACTION_CONFLICT",
            status_code=409,
            context=context,
            recovery_hint="Retry the whole operation",
        )


class PersistenceFailureError(BillingError):
    """The data store failed; the transaction was rolled back."""

    def __init__(
        self,
        message: str,
        customer_id: str | None = None,
        error_code: str = "PERSISTENCE_FAILURE",
        status_code: int = 503,
    ) -> None:
        context = {}
        if customer_id:
            context["customer_id"] = str(customer_id)
        super().__init__(
            message,
            error_code,
            status_code=status_code,
            context=context,
            recovery_hint="No changes were saved; retry later",
        )


class TransactionTimeoutError(PersistenceFailureError):
    def __init__(self, customer_id: str, timeout: float) -> None:
        super().__init__(
            f"Ledger transaction for customer {customer_id} exceeded {timeout}s",
            customer_id=customer_id,
            error_code="TRANSACTION_TIMEOUT",
            status_code=504,
        )
        self.context["timeout_seconds"] = timeout


class AutoPayError(BillingError):
    """Auto-pay configuration errors (bad card, disabled account)."""

    def __init__(self, message: str, customer_id: str | None = None) -> None:
        context = {}
        if customer_id:
            context["customer_id"] = str(customer_id)
        super().__init__(message, "AUTOPAY_ERROR", status_code=400, context=context)
