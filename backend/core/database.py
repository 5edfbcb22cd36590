"""
Database connection and initialization
"""
import logging
from motor.motor_asyncio import AsyncIOMotorClient

from .config import MONGO_URL, DB_NAME

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(
    MONGO_URL,
    maxPoolSize=100,
    minPoolSize=10,
    maxIdleTimeMS=30000,
    connectTimeoutMS=5000,
    serverSelectionTimeoutMS=5000,
    waitQueueTimeoutMS=10000
)

db = client[DB_NAME]


async def create_database_indexes():
    """Create indexes, including the unique keys the credit ledger relies on"""
    logger.info("Creating database indexes...")
    try:
        # One balance row per (user, product type)
        await db.invitation_balances.create_index(
            [("user_id", 1), ("product_type", 1)], unique=True
        )

        # Idempotency key for webhook deliveries
        await db.invitation_purchases.create_index("checkout_session_id", unique=True)
        await db.invitation_purchases.create_index([("user_id", 1), ("created_at", -1)])
        await db.invitation_purchases.create_index("balance_applied")
        await db.invitation_purchases.create_index("event_applied")

        # Events - reservation query scans published events per owner
        await db.events.create_index("id", unique=True)
        await db.events.create_index([("user_id", 1), ("status", 1)])
        await db.events.create_index([("user_id", 1), ("created_at", -1)])

        # Guests / groups / answers
        await db.groups.create_index("id", unique=True)
        await db.groups.create_index("event_id")
        await db.guests.create_index("id", unique=True)
        await db.guests.create_index([("event_id", 1), ("created_at", 1)])
        await db.questions.create_index([("event_id", 1), ("sort_order", 1)])
        await db.answer_questions.create_index(
            [("guest_id", 1), ("question_id", 1)], unique=True
        )
        await db.answer_questions.create_index("event_id")

        logger.info("Database indexes created successfully")
    except Exception as e:
        logger.error(f"Error creating indexes (may already exist): {e}")
