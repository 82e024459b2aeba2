"""Document store contract shared by every backend."""
import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Optional, Protocol, TypeVar

from circulation.core.exceptions import StoreUnavailableError

T = TypeVar("T")

BOOKS = "books"
LOANS = "loans"
FINES = "fines"
USERS = "users"


@dataclass
class Document:
    """A stored JSON payload plus the version used for conditioned writes."""

    collection: str
    id: str
    version: int
    data: dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    """
    Persistence interface for the circulation components.

    Every method raises ``DocumentNotFoundError``, ``VersionConflictError`` or
    ``StoreUnavailableError`` rather than backend-specific exceptions.
    """

    async def get(self, collection: str, id: str) -> Document:
        ...

    async def query(self, collection: str, **equals: Any) -> list[Document]:
        ...

    async def create(self, collection: str, data: dict, id: Optional[str] = None) -> Document:
        ...

    async def update(
        self, collection: str, id: str, data: dict, expected_version: int
    ) -> Document:
        ...

    async def delete(
        self, collection: str, id: str, expected_version: Optional[int] = None
    ) -> None:
        ...


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def normalize_value(value: Any) -> Any:
    """Reduce enum members to the plain value stored in documents."""
    if isinstance(value, Enum):
        return value.value
    return value


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    """Await a store call, turning a timeout into ``StoreUnavailableError``."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise StoreUnavailableError(f"Document store did not answer within {timeout}s")
