"""
Database Schemas for the membership portal

Each Pydantic model describes the documents of one MongoDB collection.
Stored field names are camelCase; models expose snake_case attributes
with camelCase aliases.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class User(Document):
    """Profile document (collection name: users). Shares its _id with an Identity."""
    full_name: str = Field(..., alias="fullName", description="Full name")
    email: str = Field(..., description="Email address")
    student_id: Optional[str] = Field(None, alias="studentId")
    course: Optional[str] = None
    year: Optional[str] = None
    role: str = Field("member", description="'member' or 'admin'")
    status: str = Field("pending", description="active|pending|inactive")


class Identity(Document):
    """Identity record (collection name: identities)"""
    email: str
    password_hash: str = Field(..., alias="passwordHash", description="BCrypt hashed password")


class PasswordReset(Document):
    """One-time reset token (collection name: passwordResets)"""
    email: str
    token: str
    used: bool = False
    expires_at: datetime = Field(..., alias="expiresAt")


class Registration(Document):
    """Public membership application (collection name: members)"""
    name: str
    email: str
    student_id: Optional[str] = Field(None, alias="studentId")
    course: Optional[str] = None
    year: Optional[str] = None
    status: str = "pending"
    role: str = "member"


class _MemberBase(Document):
    id: str
    name: str = "N/A"
    email: str = "N/A"
    student_id: str = Field("N/A", alias="studentId")
    course: str = "N/A"
    year: str = "N/A"
    status: str = "active"
    role: str = "member"
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @property
    def key(self) -> str:
        """Ids are unique per collection only; source:id is unique across both."""
        return f"{self.source}:{self.id}"


class MembersRecord(_MemberBase):
    source: Literal["members"] = "members"


class UsersRecord(_MemberBase):
    source: Literal["users"] = "users"


Member = Annotated[Union[MembersRecord, UsersRecord], Field(discriminator="source")]


def _text(value: Any) -> str:
    if value is None or value == "":
        return "N/A"
    return str(value)


def member_from_document(doc: Dict[str, Any], source: str) -> Union[MembersRecord, UsersRecord]:
    cls = UsersRecord if source == "users" else MembersRecord
    return cls(
        id=str(doc["_id"]),
        name=_text(doc.get("fullName") or doc.get("name")),
        email=_text(doc.get("email")),
        student_id=_text(doc.get("studentId")),
        course=_text(doc.get("course")),
        year=_text(doc.get("year")),
        status=doc.get("status") or "active",
        role=doc.get("role") or "member",
        created_at=doc.get("createdAt"),
    )


class Message(Document):
    """Contact form message (collection name: messages)"""
    name: str = Field(..., description="Sender name")
    email: Optional[str] = Field(None, description="Sender email, target of reply notifications")
    message: str = Field(..., description="Message text")
    status: str = Field("unread", description="'unread' or 'replied'")
    reply: Optional[str] = None
    replied_at: Optional[datetime] = Field(None, alias="repliedAt")
    replied_by: Optional[str] = Field(None, alias="repliedBy")


class Notification(Document):
    """Reply notification (collection name: userNotifications)"""
    user_email: str = Field(..., alias="userEmail")
    user_name: Optional[str] = Field(None, alias="userName")
    subject: str = "Reply to your message"
    message: str
    original_message: Optional[str] = Field(None, alias="originalMessage")
    replied_by: str = Field("Admin", alias="repliedBy")
    read: bool = False
