"""Core utilities."""
from circulation.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    FineError,
    FineErrorCode,
    IssueError,
    IssueErrorCode,
    NotFoundError,
    ReturnError,
    ReturnErrorCode,
    ValidationError,
)
from circulation.core.logging import get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # Exceptions
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "IssueError",
    "IssueErrorCode",
    "ReturnError",
    "ReturnErrorCode",
    "FineError",
    "FineErrorCode",
]
