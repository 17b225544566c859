import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from database import create_document, get_documents, to_object_id
from schemas import Notification

logger = logging.getLogger(__name__)

COLLECTION = "userNotifications"
MAX_FANOUT_WORKERS = 8


def create_notification(db, data: Dict[str, Any]) -> Dict[str, Any]:
    """Store a reply notification. Only called from the message reply flow."""
    try:
        notification = Notification(
            user_email=data["userEmail"],
            user_name=data.get("userName"),
            subject=data.get("subject") or "Reply to your message",
            message=data["message"],
            original_message=data.get("originalMessage"),
            replied_by=data.get("repliedBy") or "Admin",
            read=False,
        )
        inserted_id = create_document(db, COLLECTION, notification)
        return {"success": True, "id": inserted_id}
    except PyMongoError as e:
        logger.error("Error creating user notification: %s", e)
        return {"success": False, "error": str(e)}


def get_user_notifications(db, user_email: str) -> List[Dict[str, Any]]:
    # relies on the (userEmail, createdAt) compound index from ensure_indexes
    return get_documents(db, COLLECTION, {"userEmail": user_email}, sort_field="createdAt")


def get_unread_count(db, user_email: str) -> int:
    try:
        return db[COLLECTION].count_documents({"userEmail": user_email, "read": False})
    except PyMongoError as e:
        logger.error("Error getting unread count: %s", e)
        return 0


def mark_read(db, notification_id: str, user_email: Optional[str] = None) -> Dict[str, Any]:
    """Mark one notification read; with user_email, only if it is addressed to that user."""
    query: Dict[str, Any] = {"_id": to_object_id(notification_id)}
    if user_email is not None:
        query["userEmail"] = user_email
    try:
        result = db[COLLECTION].update_one(query, {"$set": {"read": True}})
        return {"success": True, "matched": result.matched_count}
    except PyMongoError as e:
        logger.error("Error marking notification as read: %s", e)
        return {"success": False, "error": str(e)}


def mark_all_read(db, user_email: str) -> Dict[str, Any]:
    """Mark every unread notification of a user as read.

    One update per document, issued concurrently and awaited together.
    This is not atomic: an interrupted run leaves some documents unread,
    and calling again finishes the job since each update is idempotent.
    """
    try:
        unread = list(
            db[COLLECTION]
            .find({"userEmail": user_email, "read": False}, {"_id": 1})
            .sort("createdAt", DESCENDING)
        )
        if not unread:
            return {"success": True, "updated": 0}

        def _mark(doc_id):
            return db[COLLECTION].update_one({"_id": doc_id}, {"$set": {"read": True}}).modified_count

        workers = min(MAX_FANOUT_WORKERS, len(unread))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            updated = sum(pool.map(_mark, [d["_id"] for d in unread]))
        return {"success": True, "updated": updated}
    except PyMongoError as e:
        logger.error("Error marking all as read: %s", e)
        return {"success": False, "error": str(e)}
