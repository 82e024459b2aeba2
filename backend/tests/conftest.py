"""Shared fixtures: an in-memory store with fault injection and wired components."""
import asyncio
from decimal import Decimal
from typing import Any, Optional

import pytest
from httpx import ASGITransport, AsyncClient

from circulation.core.exceptions import StoreUnavailableError
from circulation.dependencies import get_store
from circulation.main import app
from circulation.schemas.book import BookCreate
from circulation.schemas.user import UserCreate, UserRole
from circulation.services.catalog_ledger import CatalogLedger
from circulation.services.directory import DocumentUserDirectory
from circulation.services.fine_engine import FineEngine
from circulation.services.loan_manager import LoanManager
from circulation.services.reconciliation import ReconciliationSweep
from circulation.store import MemoryDocumentStore

RATE = Decimal("0.50")


class FaultyStore:
    """
    Memory store that can be told to fail or stall specific calls.

    ``fail("update", "books", times=2)`` makes the next two book updates
    raise ``StoreUnavailableError``; ``skip`` lets that many calls through
    first and ``error`` replaces the default exception. ``stall`` delays
    a call instead.
    """

    def __init__(self):
        self.inner = MemoryDocumentStore()
        self._failures: dict[tuple[str, str], list] = {}
        self._stalls: dict[tuple[str, str], float] = {}

    def fail(
        self,
        method: str,
        collection: str,
        times: int = 1,
        skip: int = 0,
        error: Optional[Exception] = None,
    ) -> None:
        self._failures[(method, collection)] = [skip, times, error]

    def stall(self, method: str, collection: str, seconds: float) -> None:
        self._stalls[(method, collection)] = seconds

    async def _before(self, method: str, collection: str) -> None:
        key = (method, collection)
        # Yield so concurrent callers interleave between read and write
        await asyncio.sleep(0)
        if key in self._stalls:
            await asyncio.sleep(self._stalls.pop(key))
        pending = self._failures.get(key)
        if not pending:
            return
        if pending[0] > 0:
            pending[0] -= 1
        elif pending[1] > 0:
            pending[1] -= 1
            raise pending[2] or StoreUnavailableError(f"injected {method} failure on {collection}")

    async def get(self, collection: str, id: str):
        await self._before("get", collection)
        return await self.inner.get(collection, id)

    async def query(self, collection: str, **equals: Any):
        await self._before("query", collection)
        return await self.inner.query(collection, **equals)

    async def create(self, collection: str, data: dict, id: Optional[str] = None):
        await self._before("create", collection)
        return await self.inner.create(collection, data, id=id)

    async def update(self, collection: str, id: str, data: dict, expected_version: int):
        await self._before("update", collection)
        return await self.inner.update(collection, id, data, expected_version)

    async def delete(self, collection: str, id: str, expected_version: Optional[int] = None):
        await self._before("delete", collection)
        return await self.inner.delete(collection, id, expected_version)


@pytest.fixture
def store() -> FaultyStore:
    return FaultyStore()


@pytest.fixture
def ledger(store) -> CatalogLedger:
    return CatalogLedger(store, max_retries=3)


@pytest.fixture
def directory(store) -> DocumentUserDirectory:
    return DocumentUserDirectory(store)


@pytest.fixture
def fine_engine(store) -> FineEngine:
    return FineEngine(store)


@pytest.fixture
def loan_manager(store, ledger, directory, fine_engine) -> LoanManager:
    return LoanManager(store, ledger, directory, fine_engine, fine_rate_per_day=RATE)


@pytest.fixture
def sweep(ledger, loan_manager) -> ReconciliationSweep:
    return ReconciliationSweep(ledger, loan_manager)


@pytest.fixture
async def member(directory):
    return await directory.register(
        UserCreate(email="reader@example.org", full_name="Ada Reader")
    )


@pytest.fixture
async def other_member(directory):
    return await directory.register(
        UserCreate(email="second@example.org", full_name="Ben Second")
    )


@pytest.fixture
async def librarian(directory):
    return await directory.register(
        UserCreate(email="desk@example.org", full_name="Desk Staff", role=UserRole.LIBRARIAN)
    )


@pytest.fixture
async def admin(directory):
    return await directory.register(
        UserCreate(email="admin@example.org", full_name="Site Admin", role=UserRole.ADMIN)
    )


@pytest.fixture
async def book(ledger):
    """A title with a single copy."""
    return await ledger.add_book(
        BookCreate(
            isbn13="978-0-13-110362-7",
            title="The C Programming Language",
            authors=["Brian Kernighan", "Dennis Ritchie"],
            location="A-12",
            quantity=1,
        )
    )


@pytest.fixture
async def client(store):
    """Test client bound to the fixture store."""
    app.dependency_overrides[get_store] = lambda: store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
