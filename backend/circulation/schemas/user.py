"""User Pydantic schemas."""
from datetime import datetime
from enum import Enum as PyEnum

from pydantic import BaseModel, EmailStr, Field, field_validator

from circulation.schemas.common import Record, UTCDateTime


class UserRole(str, PyEnum):
    """User roles enum."""
    MEMBER = "member"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


class UserRecord(Record):
    """Directory entry for a library account."""

    email: EmailStr
    full_name: str
    role: UserRole = UserRole.MEMBER
    is_suspended: bool = False
    created_at: UTCDateTime


class UserCreate(BaseModel):
    """Schema for registering an account in the directory."""

    email: EmailStr
    full_name: str = Field(..., min_length=1)
    role: UserRole = UserRole.MEMBER

    @field_validator("full_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("full_name must not be empty")
        return v.strip()


class DirectoryEntry(BaseModel):
    """What the circulation core needs to know about a borrower."""

    borrower_id: str
    exists: bool = True
    is_suspended: bool = False
    role: UserRole = UserRole.MEMBER


class TokenPayload(BaseModel):
    """JWT token payload."""

    sub: str  # user_id
    role: UserRole
    exp: datetime
