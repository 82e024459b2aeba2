"""Fine Pydantic schemas."""
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from circulation.schemas.common import Record, UTCDateTime


class FineReason(str, PyEnum):
    """Why a fine was charged."""
    LATE_RETURN = "LateReturn"
    DAMAGE = "Damage"
    LOST = "Lost"
    OTHER = "Other"


class FineStatus(str, PyEnum):
    """Fine payment status."""
    UNPAID = "Unpaid"
    PAID = "Paid"


class FineRecord(Record):
    """An assessed charge against a loan."""

    loan_id: str
    borrower_id: str
    book_id: str
    amount: Decimal = Field(..., ge=0)
    discount: Decimal = Field(Decimal("0.00"), ge=0)
    total_amount: Decimal = Field(..., ge=0)
    reason: FineReason = FineReason.LATE_RETURN
    overdue_days: int = Field(0, ge=0)
    rate_per_day: Optional[Decimal] = None
    status: FineStatus = FineStatus.UNPAID
    created_at: UTCDateTime
    paid_at: Optional[UTCDateTime] = None

    @model_validator(mode="after")
    def total_matches(self) -> "FineRecord":
        if self.total_amount != max(Decimal("0"), self.amount - self.discount):
            raise ValueError("total_amount must equal max(0, amount - discount)")
        return self

    @property
    def is_paid(self) -> bool:
        return self.status == FineStatus.PAID


class FineAssessRequest(BaseModel):
    """Staff request to charge a fine against a loan."""

    reason: FineReason = FineReason.LATE_RETURN
    manual_amount: Optional[Decimal] = Field(None, ge=0)
    discount: Decimal = Field(Decimal("0.00"), ge=0)


class OutstandingFines(BaseModel):
    """Unpaid fine summary for one borrower."""

    borrower_id: str
    unpaid_count: int
    total: Decimal
