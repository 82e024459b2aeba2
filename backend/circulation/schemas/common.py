"""Common Pydantic schemas."""
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from circulation.core.exceptions import DeserializationError
from circulation.store.base import Document

DataT = TypeVar("DataT")
RecordT = TypeVar("RecordT", bound="Record")

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(from_attributes=True)


class Record(BaseModel):
    """A persisted entity validated at the store boundary."""

    id: str

    @classmethod
    def from_document(cls: type[RecordT], document: Document) -> RecordT:
        try:
            return cls.model_validate({**document.data, "id": document.id})
        except PydanticValidationError as e:
            raise DeserializationError(
                document.collection,
                document.id,
                [err["msg"] for err in e.errors()],
            )

    def to_data(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def evolve(self: RecordT, **changes: Any) -> RecordT:
        """Return a validated copy with the given fields replaced."""
        return type(self).model_validate({**self.model_dump(), **changes})


class PaginatedResponse(BaseModel, Generic[DataT]):
    """Generic paginated response."""

    items: list[DataT]
    total: int
    page: int
    page_size: int
    total_pages: int


class ErrorResponse(BaseModel):
    """Error response schema."""

    detail: str
    error_code: Optional[str] = None
    details: dict[str, Any] = {}
