"""
Database connection and helpers

MongoDB is used as the document store. Collections:
- members: public registrations awaiting approval
- users: profile documents of people with an account
- identities: login credentials (the identity record of a profile)
- messages: contact form inbox
- userNotifications: per-user notification feed
- passwordResets: one-time password reset tokens
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient, DESCENDING

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "member_portal")

_client = MongoClient(DATABASE_URL) if DATABASE_URL else None
db = _client[DATABASE_NAME] if _client is not None else None


def get_db():
    """FastAPI dependency returning the active database handle."""
    if db is None:
        raise RuntimeError("DATABASE_URL is not configured")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(doc_id: str) -> Union[ObjectId, str]:
    """Documents inserted here use ObjectId keys; imported ones may use plain strings."""
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        return doc_id


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Replace Mongo's _id with a string id."""
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out


def create_document(database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)
    doc = dict(data)
    doc.setdefault("createdAt", now())
    inserted_id = database[collection_name].insert_one(doc).inserted_id
    return str(inserted_id)


def get_documents(database, collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  sort_field: Optional[str] = None) -> List[Dict[str, Any]]:
    cur = database[collection_name].find(filter_dict or {})
    if sort_field:
        cur = cur.sort(sort_field, DESCENDING)
    return [serialize(d) for d in cur]


def ensure_indexes(database) -> None:
    # equality on userEmail + order by createdAt needs a compound index
    database["userNotifications"].create_index([("userEmail", 1), ("createdAt", DESCENDING)])
    database["identities"].create_index("email", unique=True)
    database["passwordResets"].create_index("token", unique=True)
    logger.info("Database indexes ensured")
