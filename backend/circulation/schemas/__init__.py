"""Pydantic schemas and persisted record types."""
from circulation.schemas.book import BookAvailabilityView, BookCreate, BookRecord, BookStatus
from circulation.schemas.common import (
    ErrorResponse,
    PaginatedResponse,
    Record,
)
from circulation.schemas.fine import (
    FineAssessRequest,
    FineReason,
    FineRecord,
    FineStatus,
    OutstandingFines,
)
from circulation.schemas.loan import (
    IssueRequest,
    LoanDisplayStatus,
    LoanRecord,
    LoanResponse,
    LoanStatus,
)
from circulation.schemas.user import (
    DirectoryEntry,
    TokenPayload,
    UserCreate,
    UserRecord,
    UserRole,
)

__all__ = [
    # Common
    "Record",
    "PaginatedResponse",
    "ErrorResponse",
    # Book
    "BookRecord",
    "BookStatus",
    "BookCreate",
    "BookAvailabilityView",
    # Loan
    "LoanRecord",
    "LoanStatus",
    "LoanDisplayStatus",
    "IssueRequest",
    "LoanResponse",
    # Fine
    "FineRecord",
    "FineReason",
    "FineStatus",
    "FineAssessRequest",
    "OutstandingFines",
    # User
    "UserRecord",
    "UserRole",
    "UserCreate",
    "DirectoryEntry",
    "TokenPayload",
]
