"""
Invoice model - one billing document (boleta) per customer per period.

Design principles:
- cumulative_total = monthly_charge + outstanding balance at issue time.
  It is a snapshot and is never recomputed after issuance.
- monthly_charge is immutable once issued, barring explicit correction.
- status is maintained by the reconciler only: pending | paid
- Never physically deleted
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from app.models.base import MongoModel, PyObjectId, Money


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class Invoice(MongoModel):
    """
    Invariants:
    - Periods for one customer do not overlap
    - Invoices for one customer are totally ordered by period_start
    """
    customer_id: PyObjectId
    folio: Optional[str] = None  # Printed document number

    period_start: datetime
    period_end: datetime
    issued_at: datetime
    due_date: Optional[datetime] = None

    monthly_charge: Optional[Money] = None  # Missing on legacy imports
    cumulative_total: Money

    status: InvoiceStatus = InvoiceStatus.PENDING

    @property
    def charge(self) -> Decimal:
        """This period's own charge; legacy rows fall back to the cumulative total."""
        if self.monthly_charge is None:
            return self.cumulative_total
        return self.monthly_charge
