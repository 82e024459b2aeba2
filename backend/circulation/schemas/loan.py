"""Loan Pydantic schemas."""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from circulation.schemas.common import Record, UTCDateTime


class LoanStatus(str, PyEnum):
    """Stored loan status."""
    BORROWED = "Borrowed"
    RETURNED = "Returned"


class LoanDisplayStatus(str, PyEnum):
    """Loan status as shown to callers; Overdue is computed, never stored."""
    BORROWED = "Borrowed"
    RETURNED = "Returned"
    OVERDUE = "Overdue"


class LoanRecord(Record):
    """A single book issued to a borrower."""

    book_id: str
    borrower_id: str
    issue_date: UTCDateTime
    due_date: UTCDateTime
    return_date: Optional[UTCDateTime] = None
    status: LoanStatus = LoanStatus.BORROWED
    fine_amount: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)

    @model_validator(mode="after")
    def due_after_issue(self) -> "LoanRecord":
        if self.due_date <= self.issue_date:
            raise ValueError("due_date must be after issue_date")
        if self.status == LoanStatus.RETURNED and self.return_date is None:
            raise ValueError("returned loans need a return_date")
        return self

    @property
    def is_open(self) -> bool:
        return self.status == LoanStatus.BORROWED

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and now > self.due_date

    def display_status(self, now: datetime) -> LoanDisplayStatus:
        if self.is_overdue(now):
            return LoanDisplayStatus.OVERDUE
        return LoanDisplayStatus(self.status.value)


class IssueRequest(BaseModel):
    """Schema for issuing a book."""

    book_id: str = Field(..., min_length=1)
    borrower_id: str = Field(..., min_length=1)
    due_date: Optional[UTCDateTime] = None


class LoanResponse(BaseModel):
    """Loan with its derived display state."""

    id: str
    book_id: str
    borrower_id: str
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatus
    fine_amount: Decimal
    display_status: LoanDisplayStatus
    is_overdue: bool

    @classmethod
    def from_record(cls, loan: LoanRecord, now: datetime) -> "LoanResponse":
        return cls(
            **loan.model_dump(),
            display_status=loan.display_status(now),
            is_overdue=loan.is_overdue(now),
        )
