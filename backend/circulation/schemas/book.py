"""Book Pydantic schemas."""
from enum import Enum as PyEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from circulation.schemas.common import BaseSchema, Record, UTCDateTime


class BookStatus(str, PyEnum):
    """Book circulation status."""
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    UNAVAILABLE = "unavailable"


def normalize_isbn13(value: str) -> str:
    digits = value.replace("-", "").replace(" ", "").strip()
    if len(digits) != 13 or not digits.isdigit():
        raise ValueError("isbn13 must contain exactly 13 digits")
    return digits


class BookRecord(Record):
    """Catalog entry with its copy counters."""

    isbn13: str
    title: str = Field(..., min_length=1)
    authors: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    quantity: int = Field(..., ge=0)
    available_quantity: int = Field(..., ge=0)
    currently_borrowed: int = Field(..., ge=0)
    status: BookStatus = BookStatus.AVAILABLE
    total_checkouts: int = Field(0, ge=0)
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @model_validator(mode="after")
    def counters_balance(self) -> "BookRecord":
        if self.available_quantity + self.currently_borrowed != self.quantity:
            raise ValueError(
                "available_quantity + currently_borrowed must equal quantity"
            )
        return self

    @property
    def is_available(self) -> bool:
        return self.status != BookStatus.UNAVAILABLE and self.available_quantity > 0

    def derived_status(self, available_quantity: int) -> BookStatus:
        """Status after a counter change; staff-set states are kept."""
        if self.status in (BookStatus.RESERVED, BookStatus.UNAVAILABLE):
            return self.status
        return BookStatus.AVAILABLE if available_quantity > 0 else BookStatus.BORROWED


class BookCreate(BaseModel):
    """Schema for adding (or re-stocking) a book."""

    isbn13: str
    title: str = Field(..., min_length=1, max_length=500)
    authors: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    quantity: int = Field(1, ge=1)

    @field_validator("isbn13")
    @classmethod
    def check_isbn(cls, v: str) -> str:
        return normalize_isbn13(v)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be empty")
        return v.strip()


class BookAvailabilityView(BaseSchema):
    """Read-only snapshot of a book's counters."""

    book_id: str
    isbn13: str
    title: str
    quantity: int
    available_quantity: int
    currently_borrowed: int
    status: BookStatus
    is_available: bool

    @classmethod
    def from_record(cls, book: BookRecord) -> "BookAvailabilityView":
        return cls(
            book_id=book.id,
            isbn13=book.isbn13,
            title=book.title,
            quantity=book.quantity,
            available_quantity=book.available_quantity,
            currently_borrowed=book.currently_borrowed,
            status=book.status,
            is_available=book.is_available,
        )
