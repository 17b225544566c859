import logging
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

import notifications
from database import create_document, get_documents, now, to_object_id
from schemas import Message

logger = logging.getLogger(__name__)

COLLECTION = "messages"
REPLY_FIELDS = ("reply", "repliedAt", "repliedBy", "status")


def create_message(db, data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        msg = Message(name=data["name"], email=data.get("email"), message=data["message"], status="unread")
        inserted_id = create_document(db, COLLECTION, msg)
        return {"success": True, "id": inserted_id}
    except PyMongoError as e:
        logger.error("Error creating message: %s", e)
        return {"success": False, "error": str(e)}


def get_messages(db) -> List[Dict[str, Any]]:
    return get_documents(db, COLLECTION, sort_field="createdAt")


def delete_message(db, message_id: str) -> Dict[str, Any]:
    try:
        db[COLLECTION].delete_one({"_id": to_object_id(message_id)})
        return {"success": True}
    except PyMongoError as e:
        logger.error("Error deleting message: %s", e)
        return {"success": False, "error": str(e)}


def update_message_status(db, message_id: str, status: str) -> Dict[str, Any]:
    try:
        db[COLLECTION].update_one({"_id": to_object_id(message_id)}, {"$set": {"status": status}})
        return {"success": True}
    except PyMongoError as e:
        logger.error("Error updating message status: %s", e)
        return {"success": False, "error": str(e)}


def _restore_reply_state(db, oid, previous: Dict[str, Any]) -> None:
    to_set = {f: previous[f] for f in REPLY_FIELDS if f in previous}
    to_unset = {f: "" for f in REPLY_FIELDS if f not in previous}
    update: Dict[str, Any] = {}
    if to_set:
        update["$set"] = to_set
    if to_unset:
        update["$unset"] = to_unset
    try:
        db[COLLECTION].update_one({"_id": oid}, update)
    except PyMongoError:
        logger.exception("Could not restore message %s after failed notification", oid)
        raise


def reply_to_message(db, message_id: str, content: str, admin_email: Optional[str],
                     original: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Record an admin reply and notify the sender.

    The message update and the notification insert are separate writes.
    If the notification cannot be stored the message is put back to its
    previous reply state, so a message never shows "replied" without a
    matching notification. Repeat replies are allowed and each one
    produces its own notification.
    """
    oid = to_object_id(message_id)
    replied_by = admin_email or "Admin"
    try:
        previous = db[COLLECTION].find_one({"_id": oid})
        if not previous:
            return {"success": False, "error": "Message not found"}
        original = original or previous

        db[COLLECTION].update_one(
            {"_id": oid},
            {"$set": {"reply": content, "repliedAt": now(), "repliedBy": replied_by, "status": "replied"}},
        )
    except PyMongoError as e:
        logger.error("Error replying to message: %s", e)
        return {"success": False, "error": str(e)}

    notification_id = None
    if original.get("email"):
        result = notifications.create_notification(db, {
            "userEmail": original["email"],
            "userName": original.get("name"),
            "message": content,
            "originalMessage": original.get("message"),
            "repliedBy": replied_by,
        })
        if not result["success"]:
            logger.warning("Notification for message %s failed, reverting reply", message_id)
            try:
                _restore_reply_state(db, oid, previous)
            except PyMongoError as e:
                return {"success": False, "error": f"{result['error']}; rollback failed: {e}"}
            return {"success": False, "error": result["error"]}
        notification_id = result["id"]

    return {"success": True, "notification_id": notification_id}
