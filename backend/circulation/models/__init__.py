"""SQLAlchemy models."""
from circulation.models.document import DocumentRow

__all__ = [
    "DocumentRow",
]
