"""Custom exceptions for the application."""
from enum import Enum
from typing import Any, Optional


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class AuthenticationError(AppException):
    """Authentication related errors."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, error_code="AUTH_ERROR")


class AuthorizationError(AppException):
    """Authorization related errors."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, error_code="AUTHZ_ERROR")


class NotFoundError(AppException):
    """Resource not found errors."""

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} with id {resource_id} not found",
            error_code="NOT_FOUND",
            details={"resource": resource, "id": resource_id},
        )


class ValidationError(AppException):
    """Validation errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            error_code="VALIDATION_ERROR",
            details={"field": field} if field else {},
        )


class ConflictError(AppException):
    """Raised when a resource conflicts with an existing one (e.g., duplicate)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            error_code="CONFLICT",
            details={"field": field} if field else {},
        )


class DeserializationError(AppException):
    """A stored document does not match its record schema."""

    def __init__(self, collection: str, document_id: str, errors: list):
        super().__init__(
            f"Malformed {collection} document {document_id}",
            error_code="DESERIALIZATION_ERROR",
            details={"collection": collection, "id": document_id, "errors": errors},
        )


# ----------------------------------------------------------------------------
# Document store
# ----------------------------------------------------------------------------

class StoreError(AppException):
    """Base class for document store failures."""


class DocumentNotFoundError(StoreError):
    def __init__(self, collection: str, document_id: str):
        super().__init__(
            f"{collection}/{document_id} does not exist",
            error_code="STORE_NOT_FOUND",
            details={"collection": collection, "id": document_id},
        )


class VersionConflictError(StoreError):
    """A conditioned write lost against a concurrent writer."""

    def __init__(self, collection: str, document_id: str, expected_version: Optional[int] = None):
        super().__init__(
            f"{collection}/{document_id} changed since version {expected_version}",
            error_code="STORE_CONFLICT",
            details={
                "collection": collection,
                "id": document_id,
                "expected_version": expected_version,
            },
        )


class StoreUnavailableError(StoreError):
    """The store timed out or could not be reached."""

    def __init__(self, message: str = "Document store unavailable"):
        super().__init__(message, error_code="STORE_UNAVAILABLE")


# ----------------------------------------------------------------------------
# Catalog ledger
# ----------------------------------------------------------------------------

class LedgerError(AppException):
    """Base class for catalog ledger failures."""


class BookNotFoundError(LedgerError):
    def __init__(self, book_id: str):
        super().__init__(
            f"Book {book_id} not found",
            error_code="BOOK_NOT_FOUND",
            details={"book_id": book_id},
        )


class OutOfStockError(LedgerError):
    def __init__(self, book_id: str):
        super().__init__(
            "Book is out of stock",
            error_code="OUT_OF_STOCK",
            details={"book_id": book_id},
        )


class BookUnavailableError(LedgerError):
    def __init__(self, book_id: str):
        super().__init__(
            "Book has been withdrawn from circulation",
            error_code="BOOK_UNAVAILABLE",
            details={"book_id": book_id},
        )


class InvalidLedgerStateError(LedgerError):
    def __init__(self, book_id: str, message: str = "No borrowed copies to release"):
        super().__init__(
            message,
            error_code="INVALID_STATE",
            details={"book_id": book_id},
        )


class LedgerPersistenceError(LedgerError):
    def __init__(self, book_id: str, attempts: int):
        super().__init__(
            f"Could not update book {book_id} after {attempts} attempts",
            error_code="PERSISTENCE_FAILURE",
            details={"book_id": book_id, "attempts": attempts},
        )


# ----------------------------------------------------------------------------
# Circulation operations
# ----------------------------------------------------------------------------

class IssueErrorCode(str, Enum):
    BORROWER_NOT_FOUND = "BORROWER_NOT_FOUND"
    BORROWER_SUSPENDED = "BORROWER_SUSPENDED"
    BOOK_NOT_FOUND = "BOOK_NOT_FOUND"
    BOOK_UNAVAILABLE = "BOOK_UNAVAILABLE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    ALREADY_BORROWED = "ALREADY_BORROWED"
    INVALID_DUE_DATE = "INVALID_DUE_DATE"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


class ReturnErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_RETURNED = "ALREADY_RETURNED"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


class FineErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_PAID = "ALREADY_PAID"
    LOAN_NOT_FOUND = "LOAN_NOT_FOUND"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


class IssueError(AppException):
    """Issuing a book failed."""

    MESSAGES = {
        IssueErrorCode.BORROWER_NOT_FOUND: "Borrower is not registered",
        IssueErrorCode.BORROWER_SUSPENDED: "Borrower account is suspended",
        IssueErrorCode.BOOK_NOT_FOUND: "Book not found",
        IssueErrorCode.BOOK_UNAVAILABLE: "Book has been withdrawn from circulation",
        IssueErrorCode.OUT_OF_STOCK: "Book is out of stock",
        IssueErrorCode.ALREADY_BORROWED: "Borrower already has this book on loan",
        IssueErrorCode.INVALID_DUE_DATE: "Due date must be after issue date",
        IssueErrorCode.PERSISTENCE_FAILURE: "Could not record the loan, please retry",
    }

    def __init__(self, code: IssueErrorCode, details: Optional[dict[str, Any]] = None):
        self.code = code
        super().__init__(self.MESSAGES[code], error_code=code.value, details=details)


class ReturnError(AppException):
    """Returning a book failed."""

    MESSAGES = {
        ReturnErrorCode.NOT_FOUND: "Loan not found",
        ReturnErrorCode.ALREADY_RETURNED: "Book has already been returned",
        ReturnErrorCode.PERSISTENCE_FAILURE: "Could not record the return, please retry",
    }

    def __init__(
        self,
        code: ReturnErrorCode,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        self.code = code
        super().__init__(message or self.MESSAGES[code], error_code=code.value, details=details)


class FineError(AppException):
    """Fine assessment or payment failed."""

    MESSAGES = {
        FineErrorCode.NOT_FOUND: "Fine not found",
        FineErrorCode.ALREADY_PAID: "Fine has already been paid",
        FineErrorCode.LOAN_NOT_FOUND: "Loan not found",
        FineErrorCode.PERSISTENCE_FAILURE: "Could not record the fine, please retry",
    }

    def __init__(
        self,
        code: FineErrorCode,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        self.code = code
        super().__init__(message or self.MESSAGES[code], error_code=code.value, details=details)
