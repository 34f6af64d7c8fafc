from typing import Optional

from app.models.base import MongoModel


class Customer(MongoModel):
    """Utility customer; only the fields the billing core and auto-pay need."""
    customer_number: str
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    autopay_enabled: bool = False
    autopay_card_id: Optional[str] = None  # Kept when auto-pay is disabled

    # Bumped by every writing ledger transaction to serialize writers
    ledger_version: int = 0
    is_deleted: bool = False
