"""
AutoPayRepository - attempt history for automatic card payments.

The attempt rows are the explicit retry counter of each billing cycle:
the next attempt number for an invoice is the highest stored one plus one.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from app.models.autopay import AutoPayAttempt, AutoPayAttemptStatus
from app.models.invoice import Invoice, InvoiceStatus
from app.utils.money import to_bson


class AutoPayRepository:

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["autopay_attempts"]
        self.invoices = db["invoices"]

    async def latest_pending_invoice(self, customer_id: ObjectId) -> Optional[Invoice]:
        """Most recent invoice still pending; that is what auto-pay charges."""
        doc = await self.invoices.find_one(
            {"customer_id": customer_id, "status": InvoiceStatus.PENDING.value},
            sort=[("period_start", DESCENDING), ("_id", DESCENDING)]
        )
        if doc:
            return Invoice(**doc)
        return None

    async def next_attempt_number(self, customer_id: ObjectId, invoice_id: ObjectId) -> int:
        doc = await self.collection.find_one(
            {"customer_id": customer_id, "invoice_id": invoice_id},
            sort=[("attempt_number", DESCENDING)]
        )
        return (doc["attempt_number"] if doc else 0) + 1

    async def create_attempt(self, attempt: AutoPayAttempt) -> AutoPayAttempt:
        await self.collection.insert_one(attempt.to_document())
        return attempt

    async def finish_attempt(
        self,
        attempt_id: ObjectId,
        status: AutoPayAttemptStatus,
        error_message: Optional[str] = None,
        payment_id: Optional[ObjectId] = None,
        gateway_response: Optional[dict[str, Any]] = None,
    ) -> None:
        now = datetime.now(timezone.utc)
        await self.collection.update_one(
            {"_id": attempt_id},
            {
                "$set": to_bson({
                    "status": AutoPayAttemptStatus(status).value,
                    "error_message": error_message,
                    "payment_id": payment_id,
                    "gateway_response": gateway_response,
                    "processed_at": now,
                    "updated_at": now
                })
            }
        )

    async def list_attempts(self, customer_id: ObjectId, limit: int = 10) -> List[AutoPayAttempt]:
        docs = await self.collection.find(
            {"customer_id": customer_id}
        ).sort("created_at", DESCENDING).to_list(limit)
        return [AutoPayAttempt(**doc) for doc in docs]
