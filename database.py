"""
MongoDB access for Campus Crush.

`db` is the shared database handle (None when DATABASE_URL is not set).
Collections are named after the lowercased schema class (User -> "user").
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client = MongoClient(DATABASE_URL) if DATABASE_URL else None
db = client[DATABASE_NAME] if client is not None else None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Mongo hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except Exception:
        return None


def _get_db():
    if db is None:
        raise RuntimeError("Database is not configured")
    return db


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    stamp = now_utc()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = _get_db()[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes(database=None) -> None:
    database = database if database is not None else _get_db()
    database["user"].create_index("email", unique=True)
    database["swipe"].create_index([("swiper_id", ASCENDING), ("swiped_id", ASCENDING)], unique=True)
    database["swipe"].create_index([("swiped_id", ASCENDING), ("action", ASCENDING)])
    database["match"].create_index([("user1_id", ASCENDING), ("user2_id", ASCENDING)])
    database["match"].create_index("user2_id")
    database["match"].create_index("status")
    database["message"].create_index([("match_id", ASCENDING), ("created_at", DESCENDING)])
    database["notification"].create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
    database["notification"].create_index([("recipient_id", ASCENDING), ("is_read", ASCENDING)])
    database["confession"].create_index([("college", ASCENDING), ("created_at", DESCENDING)])
    logger.info("Database indexes ensured")
