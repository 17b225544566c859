import os
import logging
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo.errors import PyMongoError

import auth
import functions
import members
import messages
import notifications
from database import db, ensure_indexes, get_db
from logging_config import generate_request_id, request_id_var, setup_logging
from schemas import Registration, User

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Organization Member Portal API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if db is not None:
    ensure_indexes(db)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(functions.CallableError)
async def callable_error_handler(request: Request, exc: functions.CallableError):
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


def ensure_success(result: Dict[str, Any], detail: str) -> Dict[str, Any]:
    """Turn a store failure into a generic message for the client."""
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=detail)
    return result


# Schemas
class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignupModel(Payload):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    student_id: Optional[str] = Field(None, alias="studentId")
    course: Optional[str] = None
    year: Optional[str] = None


class LoginModel(BaseModel):
    email: str
    password: str


class ProfileUpdateModel(Payload):
    name: Optional[str] = None
    student_id: Optional[str] = Field(None, alias="studentId")
    course: Optional[str] = None
    year: Optional[str] = None


class PasswordResetRequestModel(BaseModel):
    email: EmailStr


class PasswordResetConfirmModel(BaseModel):
    token: str
    password: str = Field(..., min_length=6)


class RegisterModel(Payload):
    name: str = Field(..., min_length=1)
    email: EmailStr
    student_id: Optional[str] = Field(None, alias="studentId")
    course: Optional[str] = None
    year: Optional[str] = None


class MemberUpdateModel(Payload):
    name: Optional[str] = None
    student_id: Optional[str] = Field(None, alias="studentId")
    course: Optional[str] = None
    year: Optional[str] = None
    status: Optional[Literal["active", "pending", "inactive"]] = None


class RoleUpdateModel(BaseModel):
    role: Literal["member", "admin"]


class ContactMessageModel(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    message: str = Field(..., min_length=1)


class ReplyModel(Payload):
    content: str = Field(..., min_length=1)
    admin_email: Optional[str] = Field(None, alias="adminEmail")


class StatusUpdateModel(BaseModel):
    status: Literal["unread", "replied"]


class CallableRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


@app.get("/")
def root():
    return {"message": "Member portal API running"}


@app.get("/test")
def test_database():
    return {"db_connected": db is not None}


# Auth endpoints
@app.post("/auth/signup")
def signup(payload: SignupModel, db=Depends(get_db)):
    profile = User(
        full_name=payload.name,
        email=payload.email,
        student_id=payload.student_id,
        course=payload.course,
        year=payload.year,
        role="member",
        status="pending",
    )
    uid = auth.signup(db, profile, payload.password)
    token = auth.create_access_token({"sub": uid})
    return {"token": token, "user": {"id": uid, "name": payload.name, "email": payload.email, "role": "member", "status": "pending"}}


@app.post("/auth/login")
def login(payload: LoginModel, db=Depends(get_db)):
    token = auth.login(db, payload.email, payload.password)
    return {"access_token": token, "token_type": "bearer"}


@app.post("/auth/password-reset")
def password_reset(payload: PasswordResetRequestModel, db=Depends(get_db)):
    token = auth.request_password_reset(db, payload.email)
    # In production the token goes out by email instead of in the response
    return {"ok": True, "token": token}


@app.post("/auth/password-reset/confirm")
def password_reset_confirm(payload: PasswordResetConfirmModel, db=Depends(get_db)):
    auth.confirm_password_reset(db, payload.token, payload.password)
    return {"ok": True}


# Profile
@app.get("/me")
def get_me(current_user=Depends(auth.get_current_user)):
    return auth.public_profile(current_user)


@app.put("/me")
def update_me(payload: ProfileUpdateModel, current_user=Depends(auth.get_current_user), db=Depends(get_db)):
    update = {k: v for k, v in payload.model_dump(by_alias=True).items() if v is not None}
    if "name" in update:
        update["fullName"] = update.pop("name")
    if update:
        db["users"].update_one({"_id": current_user["_id"]}, {"$set": update})
    u = db["users"].find_one({"_id": current_user["_id"]})
    return auth.public_profile(u)


# Public registration
@app.post("/members/register")
def register_member(payload: RegisterModel, db=Depends(get_db)):
    registration = Registration(
        name=payload.name,
        email=payload.email,
        student_id=payload.student_id,
        course=payload.course,
        year=payload.year,
    )
    result = ensure_success(members.register(db, registration), "Failed to submit registration. Please try again.")
    return {"id": result["id"], "status": "pending"}


# Admin: member directory
def _member_out(m) -> Dict[str, Any]:
    out = m.model_dump(by_alias=True, mode="json")
    out["key"] = m.key
    return out


@app.get("/admin/members")
def admin_list_members(search: str = "", admin=Depends(auth.require_admin), db=Depends(get_db)):
    try:
        everyone = members.list_members(db)
    except PyMongoError as e:
        logger.error("Error loading members: %s", e)
        raise HTTPException(status_code=500, detail="Failed to load members. Please try again.")
    return {
        "members": [_member_out(m) for m in members.filter_members(everyone, search)],
        "stats": members.member_stats(everyone),
    }


@app.post("/admin/members/{member_id}/approve")
def admin_approve_member(member_id: str, source: str = "members", admin=Depends(auth.require_admin), db=Depends(get_db)):
    ensure_success(members.approve(db, member_id, source), "Failed to approve member. Please try again.")
    return {"message": "Member approved"}


@app.post("/admin/members/{member_id}/reject")
def admin_reject_member(member_id: str, source: str = "members", admin=Depends(auth.require_admin), db=Depends(get_db)):
    ensure_success(members.reject(db, member_id, source), "Failed to reject member. Please try again.")
    return {"message": "Member rejected"}


@app.put("/admin/members/{member_id}/role")
def admin_update_role(member_id: str, payload: RoleUpdateModel, source: str = "members", admin=Depends(auth.require_admin), db=Depends(get_db)):
    ensure_success(members.update_role(db, member_id, payload.role, source), "Failed to update role. Please try again.")
    return {"message": "Role updated"}


@app.put("/admin/members/{member_id}")
def admin_update_member(member_id: str, payload: MemberUpdateModel, source: str = "members", admin=Depends(auth.require_admin), db=Depends(get_db)):
    fields = payload.model_dump(by_alias=True)
    ensure_success(members.update_member(db, member_id, fields, source), "Failed to update member. Please try again.")
    return {"message": "Member updated"}


@app.delete("/admin/members/{member_id}")
def admin_delete_member(member_id: str, source: str = "members", admin=Depends(auth.require_admin), db=Depends(get_db)):
    ensure_success(members.delete_member(db, member_id, source), "Failed to delete member. Please try again.")
    return {"message": "Member deleted"}


# Callable functions
@app.post("/functions/deleteMember")
def call_delete_member(payload: CallableRequest, caller_uid=Depends(auth.get_optional_uid), db=Depends(get_db)):
    return {"result": functions.delete_member(db, caller_uid, payload.data)}


# Contact messages
@app.post("/messages")
def send_message(payload: ContactMessageModel, db=Depends(get_db)):
    result = ensure_success(messages.create_message(db, payload.model_dump()), "Failed to send message. Please try again.")
    return {"id": result["id"]}


@app.get("/admin/messages")
def admin_list_messages(admin=Depends(auth.require_admin), db=Depends(get_db)):
    try:
        return messages.get_messages(db)
    except PyMongoError as e:
        logger.error("Error getting messages: %s", e)
        raise HTTPException(status_code=500, detail="Failed to load messages. Please try again.")


@app.post("/admin/messages/{message_id}/reply")
def admin_reply_message(message_id: str, payload: ReplyModel, admin=Depends(auth.require_admin), db=Depends(get_db)):
    replied_by = payload.admin_email or admin.get("email")
    result = messages.reply_to_message(db, message_id, payload.content, replied_by)
    if not result["success"] and result.get("error") == "Message not found":
        raise HTTPException(status_code=404, detail="Message not found")
    ensure_success(result, "Failed to send reply. Please try again.")
    return {"message": "Reply sent", "notification_id": result["notification_id"]}


@app.put("/admin/messages/{message_id}/status")
def admin_update_message_status(message_id: str, payload: StatusUpdateModel, admin=Depends(auth.require_admin), db=Depends(get_db)):
    ensure_success(messages.update_message_status(db, message_id, payload.status), "Failed to update message. Please try again.")
    return {"message": "Status updated"}


@app.delete("/admin/messages/{message_id}")
def admin_delete_message(message_id: str, admin=Depends(auth.require_admin), db=Depends(get_db)):
    ensure_success(messages.delete_message(db, message_id), "Failed to delete message. Please try again.")
    return {"message": "Message deleted"}


# Notifications
@app.get("/notifications")
def list_notifications(current_user=Depends(auth.get_current_user), db=Depends(get_db)):
    try:
        return notifications.get_user_notifications(db, current_user.get("email"))
    except PyMongoError as e:
        logger.error("Error getting user notifications: %s", e)
        raise HTTPException(status_code=500, detail="Failed to load notifications.")


@app.get("/notifications/unread-count")
def unread_count(current_user=Depends(auth.get_current_user), db=Depends(get_db)):
    return {"count": notifications.get_unread_count(db, current_user.get("email"))}


@app.post("/notifications/{notification_id}/read")
def read_notification(notification_id: str, current_user=Depends(auth.get_current_user), db=Depends(get_db)):
    result = ensure_success(notifications.mark_read(db, notification_id, current_user.get("email")),
                            "Failed to update notification.")
    if not result["matched"]:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Marked as read"}


@app.post("/notifications/read-all")
def read_all_notifications(current_user=Depends(auth.get_current_user), db=Depends(get_db)):
    result = ensure_success(notifications.mark_all_read(db, current_user.get("email")), "Failed to update notifications.")
    return {"message": "All marked as read", "updated": result["updated"]}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
