"""
Member directory

Members live in two collections: `members` holds public registrations and
`users` holds profiles of people with an account. Both are merged into one
list; each entry keeps its `source` so writes go back to the right
collection.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from database import create_document, now, to_object_id
from schemas import Member, Registration, member_from_document

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "studentId", "course", "year", "status")


def collection_for(source: Optional[str]) -> str:
    return "users" if source == "users" else "members"


def register(db, registration: Registration) -> Dict[str, Any]:
    try:
        inserted_id = create_document(db, "members", registration)
        return {"success": True, "id": inserted_id}
    except PyMongoError as e:
        logger.error("Error registering member: %s", e)
        return {"success": False, "error": str(e)}


def list_members(db) -> List[Member]:
    registrations = db["members"].find().sort("createdAt", DESCENDING)
    members = [member_from_document(d, "members") for d in registrations]
    members.extend(member_from_document(d, "users") for d in db["users"].find())
    return members


def _write(db, action: str, member_id: str, source: Optional[str], update: Optional[Dict[str, Any]] = None):
    name = collection_for(source)
    try:
        if update is None:
            db[name].delete_one({"_id": to_object_id(member_id)})
        else:
            db[name].update_one({"_id": to_object_id(member_id)}, {"$set": update})
        logger.info("%s %s/%s", action, name, member_id)
        return {"success": True}
    except PyMongoError as e:
        logger.error("Error during %s of %s/%s: %s", action, name, member_id, e)
        return {"success": False, "error": str(e)}


def approve(db, member_id: str, source: str = "members") -> Dict[str, Any]:
    return _write(db, "approve", member_id, source, {"status": "active"})


def reject(db, member_id: str, source: str = "members") -> Dict[str, Any]:
    return _write(db, "reject", member_id, source)


def update_role(db, member_id: str, role: str, source: str = "members") -> Dict[str, Any]:
    return _write(db, "role change", member_id, source, {"role": role})


def update_member(db, member_id: str, fields: Dict[str, Any], source: str = "members") -> Dict[str, Any]:
    update = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
    update["updatedAt"] = now()
    if collection_for(source) == "users" and "name" in update:
        update["fullName"] = update["name"]
    return _write(db, "update", member_id, source, update)


def delete_member(db, member_id: str, source: str = "members") -> Dict[str, Any]:
    return _write(db, "delete", member_id, source)


def _non_admin(members: Iterable[Member]) -> List[Member]:
    return [m for m in members if (m.role or "member") != "admin"]


def filter_members(members: Iterable[Member], search: str = "") -> List[Member]:
    term = (search or "").lower()
    return [
        m for m in _non_admin(members)
        if term in m.name.lower() or term in m.email.lower() or term in m.student_id.lower()
    ]


def member_stats(members: Iterable[Member]) -> Dict[str, int]:
    visible = _non_admin(members)
    return {
        "total": len(visible),
        "pending": sum(1 for m in visible if m.status == "pending"),
        "active": sum(1 for m in visible if m.status == "active"),
    }
