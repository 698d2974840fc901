# gnosis/core/database.py

"""
MongoDB access layer
Motor client, database dependency, index bootstrap and document serialization
"""

import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from gnosis.core.config import MONGO_URL, DB_NAME

logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


# ==================== DEPENDENCY FUNCTIONS ====================

async def get_db() -> AsyncIOMotorDatabase:
    """Database dependency"""
    return db


# ==================== SERIALIZATION ====================

def serialize_mongo(doc: Any) -> Any:
    """Convert ObjectIds (at any depth) to strings so documents are JSON-safe"""
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, dict):
        return {key: serialize_mongo(value) for key, value in doc.items()}
    if isinstance(doc, list):
        return [serialize_mongo(item) for item in doc]
    return doc


def serialize_many(docs: list[dict]) -> list[dict]:
    return [serialize_mongo(doc) for doc in docs]


def to_object_id(value: Any, label: str = "") -> ObjectId:
    """Parse an ObjectId or fail with 400 'Invalid <label> ID format'"""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        prefix = f"{label} " if label else ""
        raise HTTPException(status_code=400, detail=f"Invalid {prefix}ID format")


def maybe_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId when the value parses as one, else None"""
    if isinstance(value, ObjectId):
        return value
    if value and ObjectId.is_valid(str(value)):
        return ObjectId(str(value))
    return None


def utcnow() -> datetime:
    return datetime.utcnow()


def paginate(page: int, limit: int) -> tuple[int, int, int]:
    """Normalize page/limit query values into (page, limit, skip)"""
    page = max(page, 1)
    limit = max(min(limit, 100), 1)
    return page, limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int, item_label: str) -> dict:
    total_pages = (total + limit - 1) // limit if total else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        f"total{item_label}": total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


# ==================== INDEXES ====================

async def create_indexes(database: Optional[AsyncIOMotorDatabase] = None):
    """Create MongoDB indexes for data integrity"""
    database = database if database is not None else db
    try:
        await database.users.create_index([("email", ASCENDING)], unique=True)
        await database.users.create_index([("firebaseUid", ASCENDING)], sparse=True)
        await database.users.create_index([("appleId", ASCENDING)], sparse=True)

        # Blacklisted tokens disappear once the JWT itself would have expired
        await database.token_blacklist.create_index([("token", ASCENDING)], unique=True)
        await database.token_blacklist.create_index([("expiresAt", ASCENDING)], expireAfterSeconds=0)

        await database.branches.create_index(
            [("name", ASCENDING), ("category", ASCENDING)],
            unique=True
        )
        await database.guide_books.create_index([("branchId", ASCENDING)], unique=True)

        await database.questions.create_index(
            [("branchId", ASCENDING), ("level", ASCENDING), ("questionNumber", ASCENDING)],
            unique=True
        )
        await database.user_answers.create_index(
            [("userId", ASCENDING), ("questionId", ASCENDING)],
            unique=True
        )
        await database.user_levels.create_index(
            [("userId", ASCENDING), ("branchId", ASCENDING)],
            unique=True
        )

        await database.achievements.create_index([("name", ASCENDING)], unique=True)
        await database.user_achievements.create_index(
            [("userId", ASCENDING), ("achievementId", ASCENDING)],
            unique=True
        )

        await database.plans.create_index([("name", ASCENDING)], unique=True)
        await database.user_subscriptions.create_index([("userId", ASCENDING), ("status", ASCENDING)])
        await database.user_subscriptions.create_index([("stripeDetails.paymentIntentId", ASCENDING)], sparse=True)
        await database.user_subscriptions.create_index([("paypalDetails.orderId", ASCENDING)], sparse=True)

        await database.chats.create_index([("userId", ASCENDING), ("lastMessageAt", DESCENDING)])
        await database.invitations.create_index([("token", ASCENDING)], unique=True)
        await database.reviews.create_index([("adminId", ASCENDING), ("status", ASCENDING)])
        await database.question_packet_answers.create_index(
            [("userId", ASCENDING), ("packetId", ASCENDING)],
            unique=True
        )
        await database.about_us.create_index([("section", ASCENDING)], unique=True)

        logger.info("✅ MongoDB indexes created successfully")
    except Exception as e:
        logger.warning(f"⚠️  Index creation warning: {e}")
