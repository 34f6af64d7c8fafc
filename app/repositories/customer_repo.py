from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from datetime import datetime, timezone
from typing import List
from app.models.customer import Customer

class CustomerRepository:
    """Customer lookups and auto-pay settings (no ledger writes)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["customers"]

    async def create_customer(self, customer: Customer) -> Customer:
        """Create a new customer."""
        await self.collection.insert_one(customer.to_document())
        return customer

    async def get_customer(self, customer_id: str) -> Customer | None:
        """Get customer by ID."""
        if not ObjectId.is_valid(str(customer_id)):
            return None
        doc = await self.collection.find_one({
            "_id": ObjectId(str(customer_id)),
            "is_deleted": False
        })
        if doc:
            return Customer(**doc)
        return None

    async def list_autopay_customers(self) -> List[Customer]:
        """Customers with auto-pay switched on and a card configured."""
        docs = await self.collection.find({
            "autopay_enabled": True,
            "autopay_card_id": {"$ne": None},
            "is_deleted": False
        }).to_list(None)
        return [Customer(**doc) for doc in docs]

    async def set_autopay(self, customer_id: str, enabled: bool, card_id: str | None = None) -> Customer | None:
        """Switch auto-pay on or off. The card is kept when switching off."""
        update = {
            "autopay_enabled": enabled,
            "updated_at": datetime.now(timezone.utc)
        }
        if card_id is not None:
            update["autopay_card_id"] = card_id

        if not ObjectId.is_valid(str(customer_id)):
            return None
        result = await self.collection.find_one_and_update(
            {"_id": ObjectId(str(customer_id)), "is_deleted": False},
            {"$set": update},
            return_document=True
        )
        if result:
            return Customer(**result)
        return None
