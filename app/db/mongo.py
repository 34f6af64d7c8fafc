from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
import structlog
from app.core.config import settings

logger = structlog.get_logger(__name__)

class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    # tz_aware so paid_at/issued_at compare as UTC datetimes
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes()
    logger.info("mongo.connected", database=settings.DATABASE_NAME)

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("mongo.disconnected")

async def create_indexes():
    """Create database indexes."""
    await mongodb.db["customers"].create_index("customer_number", unique=True)
    await mongodb.db["customers"].create_index([("autopay_enabled", 1), ("is_deleted", 1)])

    # Baseline lookup and newest-first walk
    await mongodb.db["invoices"].create_index(
        [("customer_id", 1), ("period_start", -1), ("issued_at", -1)]
    )
    await mongodb.db["invoices"].create_index([("customer_id", 1), ("status", 1)])

    # Payments after baseline
    await mongodb.db["payments"].create_index([("customer_id", 1), ("status", 1), ("paid_at", 1)])

    await mongodb.db["autopay_attempts"].create_index(
        [("customer_id", 1), ("invoice_id", 1), ("attempt_number", -1)]
    )

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
