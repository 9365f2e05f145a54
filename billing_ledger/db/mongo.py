import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from billing_ledger.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB", extra={"database": settings.DATABASE_NAME})

async def disconnect_from_mongo():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # Bill periods: one document per tenant per period
    await db["bill_periods"].create_index([("tenant_id", 1), ("period_key", 1)], unique=True)

    # Transactions
    await db["transactions"].create_index([("tenant_id", 1), ("account_id", 1), ("created_at", -1)])
    await db["transactions"].create_index([("tenant_id", 1), ("status", 1)])

    # Reversal step records and audit trail
    await db["reversals"].create_index("tenant_id")
    await db["audit_log"].create_index([("tenant_id", 1), ("timestamp", -1)])

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
