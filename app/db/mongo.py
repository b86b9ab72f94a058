import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from app.core.config import settings

logger = logging.getLogger(__name__)

class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URI)
    mongodb.db = mongodb.client[settings.MONGODB_DB]

    # Create indexes
    await create_indexes(mongodb.db)
    logger.info("Connected to MongoDB: %s", settings.MONGODB_DB)

async def disconnect_from_mongo():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes."""
    # Delivery note numbers are unique per owner, not globally
    await db["delivery_notes"].create_index(
        [("owner_id", ASCENDING), ("note_number", ASCENDING)],
        unique=True,
        name="owner_note_number_unique"
    )
    await db["delivery_notes"].create_index(
        [("owner_id", ASCENDING), ("project_id", ASCENDING), ("date", DESCENDING)]
    )

    # Lookups used by the delivery note service
    await db["projects"].create_index([("created_by", ASCENDING), ("archived", ASCENDING)])
    await db["clients"].create_index("created_by")
    await db["users"].create_index("company_id")

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
