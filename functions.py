"""
Privileged server-side functions

Callable functions receive a `data` payload plus the authenticated caller's
uid and either return a result dict or raise CallableError. The error code
is one of the callable status names below; main.py maps them to HTTP.
"""
import logging
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from database import to_object_id

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "unauthenticated": 401,
    "invalid-argument": 400,
    "permission-denied": 403,
    "internal": 500,
}


class CallableError(Exception):
    """Typed failure of a callable function"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        if code not in ERROR_STATUS:
            raise ValueError(f"Unknown callable error code: {code}")
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def http_status(self) -> int:
        return ERROR_STATUS[self.code]

    def to_dict(self) -> Dict[str, Any]:
        body = {"status": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


def _require_admin(db, caller_uid: str) -> None:
    # read the caller's role on every call so a revoked admin is refused at once
    requester = db["users"].find_one({"_id": to_object_id(caller_uid)})
    if not requester or requester.get("role") != "admin":
        raise CallableError("permission-denied", "Only admins can delete members")


def delete_member(db, caller_uid: Optional[str], data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Delete a member's identity record and profile document.

    The two deletes are separate writes. If the profile delete fails the
    identity record is put back, so the member can still sign in and the
    call can be retried.
    """
    if not caller_uid:
        raise CallableError("unauthenticated", "User must be authenticated")

    user_id = (data or {}).get("userId")
    if not user_id:
        raise CallableError("invalid-argument", "User ID is required")

    try:
        _require_admin(db, caller_uid)

        oid = to_object_id(user_id)
        identity = db["identities"].find_one({"_id": oid})
        if identity is None:
            raise CallableError("internal", f"No user record for id {user_id}")
        db["identities"].delete_one({"_id": oid})
        logger.info("Deleted identity record %s", user_id)

        try:
            db["users"].delete_one({"_id": oid})
        except PyMongoError:
            db["identities"].insert_one(identity)
            logger.warning("Restored identity record %s after failed profile delete", user_id)
            raise
        logger.info("Deleted profile document %s", user_id)

        return {"success": True, "message": "Member deleted successfully from database and authentication"}
    except CallableError:
        raise
    except Exception as e:
        logger.exception("Error deleting member %s", user_id)
        raise CallableError("internal", str(e)) from e


def delete_member_completely(db, caller_uid: Optional[str], user_id: str) -> Dict[str, Any]:
    """Client-side wrapper: call the function and flatten the outcome."""
    try:
        result = delete_member(db, caller_uid, {"userId": user_id})
        return {"success": True, "message": result["message"]}
    except CallableError as e:
        logger.error("Error deleting member: %s", e.message)
        return {"success": False, "error": e.message}
