import os
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header, HTTPException
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError, PyMongoError

from database import get_db, now, to_object_id
from schemas import Identity, PasswordReset, User

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))
RESET_TOKEN_MINUTES = int(os.getenv("RESET_TOKEN_MINUTES", "60"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def decode_uid(token: str) -> str:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Could not validate credentials")
    uid = payload.get("sub")
    if uid is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return uid


# Auth dependencies (manual bearer parsing)

def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return authorization.split(" ", 1)[1]


def get_optional_uid(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Caller uid for callable functions, which report a missing or bad caller themselves."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    try:
        return decode_uid(authorization.split(" ", 1)[1])
    except HTTPException as e:
        logger.info("Rejected bearer token on callable: %s", e.detail)
        return None


def get_current_user(token: str = Depends(get_bearer_token), db=Depends(get_db)) -> Dict[str, Any]:
    uid = decode_uid(token)
    user = db["users"].find_one({"_id": to_object_id(uid)})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(current_user=Depends(get_current_user)) -> Dict[str, Any]:
    if current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admins only")
    return current_user


def public_profile(u: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(u["_id"]),
        "name": u.get("fullName") or u.get("name"),
        "email": u.get("email"),
        "studentId": u.get("studentId"),
        "course": u.get("course"),
        "year": u.get("year"),
        "role": u.get("role", "member"),
        "status": u.get("status", "active"),
    }


def signup(db, profile: User, password: str) -> str:
    """Create the identity record and its profile document under one id."""
    if db["identities"].find_one({"email": profile.email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    identity = Identity(email=profile.email, password_hash=hash_password(password))
    try:
        uid = db["identities"].insert_one({**identity.model_dump(by_alias=True), "createdAt": now()}).inserted_id
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    doc = profile.model_dump(by_alias=True, exclude_none=True)
    doc.update({"_id": uid, "createdAt": now()})
    try:
        db["users"].insert_one(doc)
    except PyMongoError:
        # drop the identity so the email can sign up again
        db["identities"].delete_one({"_id": uid})
        logger.warning("Removed identity %s after failed profile insert", uid)
        raise
    logger.info("Registered account %s", uid)
    return str(uid)


def login(db, email: str, password: str) -> str:
    identity = db["identities"].find_one({"email": email})
    if not identity or not verify_password(password, identity.get("passwordHash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return create_access_token({"sub": str(identity["_id"])})


def request_password_reset(db, email: str) -> str:
    """Issue a reset token. Delivering it by e-mail is left to the deployment."""
    if not db["identities"].find_one({"email": email}):
        raise HTTPException(status_code=404, detail="No account found with this email address")
    token = secrets.token_urlsafe(32)
    reset = PasswordReset(email=email, token=token, expires_at=now() + timedelta(minutes=RESET_TOKEN_MINUTES))
    db["passwordResets"].insert_one({**reset.model_dump(by_alias=True), "createdAt": now()})
    return token


def confirm_password_reset(db, token: str, new_password: str) -> None:
    record = db["passwordResets"].find_one({"token": token, "used": False})
    if not record:
        raise HTTPException(status_code=400, detail="Invalid or used reset token")
    expires_at = record["expiresAt"]
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < now():
        raise HTTPException(status_code=400, detail="Reset token expired")

    db["identities"].update_one({"email": record["email"]}, {"$set": {"passwordHash": hash_password(new_password)}})
    db["passwordResets"].update_one({"_id": record["_id"]}, {"$set": {"used": True, "usedAt": now()}})
