"""Catalog ledger: authoritative copy counts for each book."""
from typing import Callable, List, Optional

from circulation.core.exceptions import (
    BookNotFoundError,
    BookUnavailableError,
    DocumentNotFoundError,
    InvalidLedgerStateError,
    LedgerPersistenceError,
    OutOfStockError,
    StoreUnavailableError,
    VersionConflictError,
)
from circulation.core.logging import get_logger
from circulation.schemas.book import BookAvailabilityView, BookCreate, BookRecord, BookStatus
from circulation.schemas.common import utcnow
from circulation.store.base import BOOKS, DocumentStore, new_id, with_timeout

logger = get_logger("ledger")


class CatalogLedger:
    """
    Owns every write to book records.

    Counter changes are read-modify-write cycles conditioned on the document
    version. A lost race or a transient store failure restarts the cycle from
    a fresh read, up to ``max_retries`` attempts.
    """

    def __init__(
        self,
        store: DocumentStore,
        max_retries: int = 5,
        timeout: Optional[float] = None,
    ):
        self._store = store
        self._max_retries = max_retries
        self._timeout = timeout

    async def _load(self, book_id: str) -> tuple[BookRecord, int]:
        try:
            doc = await with_timeout(self._store.get(BOOKS, book_id), self._timeout)
        except DocumentNotFoundError:
            raise BookNotFoundError(book_id)
        return BookRecord.from_document(doc), doc.version

    async def _mutate(
        self, book_id: str, change: Callable[[BookRecord], BookRecord]
    ) -> BookRecord:
        """Apply ``change`` under optimistic concurrency control."""
        for attempt in range(1, self._max_retries + 1):
            try:
                book, version = await self._load(book_id)
                updated = change(book).evolve(updated_at=utcnow())
                await with_timeout(
                    self._store.update(BOOKS, book_id, updated.to_data(), expected_version=version),
                    self._timeout,
                )
                return updated
            except VersionConflictError:
                logger.debug(f"Version conflict on book {book_id} (attempt {attempt})")
            except StoreUnavailableError as e:
                logger.warning(f"Store unavailable updating book {book_id} (attempt {attempt}): {e}")
        raise LedgerPersistenceError(book_id, self._max_retries)

    async def add_book(self, book_data: BookCreate) -> BookRecord:
        """Add a book to the catalog, or re-stock it if the ISBN-13 exists."""
        existing = await self.find_by_isbn(book_data.isbn13)
        if existing is not None:
            def restock(book: BookRecord) -> BookRecord:
                available = book.available_quantity + book_data.quantity
                return book.evolve(
                    quantity=book.quantity + book_data.quantity,
                    available_quantity=available,
                    status=book.derived_status(available),
                )

            book = await self._mutate(existing.id, restock)
            logger.info(f"Re-stocked {book.isbn13} by {book_data.quantity} (quantity={book.quantity})")
            return book

        now = utcnow()
        book = BookRecord(
            id=new_id("book"),
            isbn13=book_data.isbn13,
            title=book_data.title,
            authors=book_data.authors,
            location=book_data.location,
            quantity=book_data.quantity,
            available_quantity=book_data.quantity,
            currently_borrowed=0,
            status=BookStatus.AVAILABLE,
            total_checkouts=0,
            created_at=now,
            updated_at=now,
        )
        await with_timeout(self._store.create(BOOKS, book.to_data(), id=book.id), self._timeout)
        logger.info(f"Added book {book.id} ({book.isbn13}) with {book.quantity} copies")
        return book

    async def reserve_copy(self, book_id: str) -> BookRecord:
        """Take one copy out of the available pool."""

        def reserve(book: BookRecord) -> BookRecord:
            if book.status == BookStatus.UNAVAILABLE:
                raise BookUnavailableError(book_id)
            if book.available_quantity == 0:
                raise OutOfStockError(book_id)
            available = book.available_quantity - 1
            return book.evolve(
                available_quantity=available,
                currently_borrowed=book.currently_borrowed + 1,
                total_checkouts=book.total_checkouts + 1,
                status=book.derived_status(available),
            )

        return await self._mutate(book_id, reserve)

    async def release_copy(self, book_id: str) -> BookRecord:
        """Put one borrowed copy back into the available pool."""

        def release(book: BookRecord) -> BookRecord:
            if book.currently_borrowed == 0:
                raise InvalidLedgerStateError(book_id)
            available = book.available_quantity + 1
            return book.evolve(
                available_quantity=available,
                currently_borrowed=book.currently_borrowed - 1,
                status=book.derived_status(available),
            )

        return await self._mutate(book_id, release)

    async def withdraw_book(self, book_id: str) -> BookRecord:
        """Take a book out of circulation without deleting it."""
        book = await self._mutate(
            book_id, lambda b: b.evolve(status=BookStatus.UNAVAILABLE)
        )
        logger.info(f"Withdrew book {book_id}")
        return book

    async def correct_borrowed_count(self, book_id: str, currently_borrowed: int) -> BookRecord:
        """Overwrite the borrowed counter with a reconciled value."""

        def correct(book: BookRecord) -> BookRecord:
            if not 0 <= currently_borrowed <= book.quantity:
                raise InvalidLedgerStateError(
                    book_id,
                    f"Cannot set currently_borrowed={currently_borrowed} on a book with quantity={book.quantity}",
                )
            available = book.quantity - currently_borrowed
            return book.evolve(
                available_quantity=available,
                currently_borrowed=currently_borrowed,
                status=book.derived_status(available),
            )

        book = await self._mutate(book_id, correct)
        logger.warning(f"Corrected book {book_id} to currently_borrowed={currently_borrowed}")
        return book

    async def get_book(self, book_id: str) -> BookRecord:
        book, _ = await self._load(book_id)
        return book

    async def get_availability(self, book_id: str) -> BookAvailabilityView:
        return BookAvailabilityView.from_record(await self.get_book(book_id))

    async def find_by_isbn(self, isbn13: str) -> Optional[BookRecord]:
        docs = await with_timeout(self._store.query(BOOKS, isbn13=isbn13), self._timeout)
        return BookRecord.from_document(docs[0]) if docs else None

    async def list_books(self, status: Optional[BookStatus] = None) -> List[BookRecord]:
        filters = {"status": status} if status else {}
        docs = await with_timeout(self._store.query(BOOKS, **filters), self._timeout)
        return [BookRecord.from_document(doc) for doc in docs]
