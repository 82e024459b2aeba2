"""Loan manager: issue and return as compensated multi-step operations."""
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, List, Optional, TypeVar

from circulation.core.exceptions import (
    BookNotFoundError,
    BookUnavailableError,
    DocumentNotFoundError,
    FineError,
    FineErrorCode,
    IssueError,
    IssueErrorCode,
    LedgerError,
    OutOfStockError,
    ReturnError,
    ReturnErrorCode,
    StoreError,
    StoreUnavailableError,
    VersionConflictError,
)
from circulation.core.logging import get_logger
from circulation.schemas.common import ensure_utc, to_money, utcnow
from circulation.schemas.fine import FineReason, FineRecord
from circulation.schemas.loan import LoanRecord, LoanStatus
from circulation.services.catalog_ledger import CatalogLedger
from circulation.services.directory import UserDirectory
from circulation.services.fine_engine import FineEngine
from circulation.store.base import LOANS, Document, DocumentStore, new_id, with_timeout

logger = get_logger("loans")

T = TypeVar("T")

LEDGER_ISSUE_ERRORS = {
    OutOfStockError: IssueErrorCode.OUT_OF_STOCK,
    BookNotFoundError: IssueErrorCode.BOOK_NOT_FOUND,
    BookUnavailableError: IssueErrorCode.BOOK_UNAVAILABLE,
}


async def run_to_completion(coro: Awaitable[T]) -> T:
    """
    Run ``coro`` in its own task and wait for it.

    Cancelling the waiter does not cancel the task, so an abandoned
    issue or return still finishes, compensation included.
    """
    task = asyncio.ensure_future(coro)
    return await asyncio.shield(task)


class LoanManager:
    """Owns every write to loan records."""

    def __init__(
        self,
        store: DocumentStore,
        ledger: CatalogLedger,
        directory: UserDirectory,
        fine_engine: FineEngine,
        fine_rate_per_day: Decimal = Decimal("0.50"),
        timeout: Optional[float] = None,
        max_retries: int = 5,
    ):
        self._store = store
        self._ledger = ledger
        self._directory = directory
        self._fines = fine_engine
        self._fine_rate = fine_rate_per_day
        self._timeout = timeout
        self._max_retries = max_retries

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    async def issue_book(
        self,
        book_id: str,
        borrower_id: str,
        due_date: datetime,
        now: Optional[datetime] = None,
    ) -> LoanRecord:
        """Issue one copy of ``book_id`` to ``borrower_id`` until ``due_date``."""
        return await run_to_completion(
            self._issue(book_id, borrower_id, ensure_utc(due_date), ensure_utc(now) or utcnow())
        )

    async def _issue(
        self, book_id: str, borrower_id: str, due_date: datetime, now: datetime
    ) -> LoanRecord:
        if due_date <= now:
            raise IssueError(
                IssueErrorCode.INVALID_DUE_DATE,
                details={"due_date": due_date.isoformat(), "issue_date": now.isoformat()},
            )

        try:
            entry = await with_timeout(self._directory.lookup(borrower_id), self._timeout)
        except StoreError:
            raise IssueError(IssueErrorCode.PERSISTENCE_FAILURE, details={"borrower_id": borrower_id})
        if entry is None or not entry.exists:
            raise IssueError(IssueErrorCode.BORROWER_NOT_FOUND, details={"borrower_id": borrower_id})
        if entry.is_suspended:
            raise IssueError(IssueErrorCode.BORROWER_SUSPENDED, details={"borrower_id": borrower_id})

        try:
            open_loans = await self._query(
                book_id=book_id, borrower_id=borrower_id, status=LoanStatus.BORROWED
            )
        except StoreError:
            raise IssueError(IssueErrorCode.PERSISTENCE_FAILURE, details={"book_id": book_id})
        if open_loans:
            raise IssueError(
                IssueErrorCode.ALREADY_BORROWED,
                details={"book_id": book_id, "loan_id": open_loans[0].id},
            )

        try:
            await self._ledger.reserve_copy(book_id)
        except (OutOfStockError, BookNotFoundError, BookUnavailableError) as e:
            raise IssueError(LEDGER_ISSUE_ERRORS[type(e)], details={"book_id": book_id})
        except (LedgerError, StoreError):
            raise IssueError(IssueErrorCode.PERSISTENCE_FAILURE, details={"book_id": book_id})

        loan = LoanRecord(
            id=new_id("loan"),
            book_id=book_id,
            borrower_id=borrower_id,
            issue_date=now,
            due_date=due_date,
            status=LoanStatus.BORROWED,
            fine_amount=Decimal("0.00"),
        )
        try:
            await with_timeout(self._store.create(LOANS, loan.to_data(), id=loan.id), self._timeout)
        except StoreError as e:
            logger.warning(f"Loan write for book {book_id} failed ({e.message}), releasing reserved copy")
            await self._compensate_reservation(book_id)
            raise IssueError(IssueErrorCode.PERSISTENCE_FAILURE, details={"book_id": book_id})

        logger.info(
            f"Issued book {book_id} to {borrower_id} as loan {loan.id}, due {due_date.date().isoformat()}"
        )
        return loan

    async def _compensate_reservation(self, book_id: str) -> None:
        try:
            await self._ledger.release_copy(book_id)
        except (LedgerError, StoreError) as e:
            logger.error(
                f"Compensation failed for book {book_id}: {e.message}. "
                "Counter drift left for the reconciliation sweep."
            )

    # ------------------------------------------------------------------
    # Return
    # ------------------------------------------------------------------

    async def return_book(self, loan_id: str, now: Optional[datetime] = None) -> LoanRecord:
        """Close a loan, release the copy and charge any late-return fine."""
        return await run_to_completion(self._return(loan_id, ensure_utc(now) or utcnow()))

    async def _return(self, loan_id: str, now: datetime) -> LoanRecord:
        try:
            loan, version = await self._load(loan_id)
        except DocumentNotFoundError:
            raise ReturnError(ReturnErrorCode.NOT_FOUND, details={"loan_id": loan_id})
        except StoreError:
            raise ReturnError(ReturnErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})
        if loan.status != LoanStatus.BORROWED:
            raise ReturnError(ReturnErrorCode.ALREADY_RETURNED, details={"loan_id": loan_id})

        returned = loan.evolve(return_date=now, status=LoanStatus.RETURNED)
        try:
            doc = await self._write(returned, version)
        except VersionConflictError:
            # Somebody else closed it between our read and write
            raise ReturnError(ReturnErrorCode.ALREADY_RETURNED, details={"loan_id": loan_id})
        except StoreError:
            raise ReturnError(ReturnErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})

        try:
            await self._ledger.release_copy(loan.book_id)
        except (LedgerError, StoreError) as e:
            logger.warning(f"Release of book {loan.book_id} failed ({e.message}), reopening loan {loan_id}")
            await self._compensate_return(loan, doc.version)
            raise ReturnError(ReturnErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})

        logger.info(f"Loan {loan_id} returned (book {loan.book_id})")

        if now > loan.due_date:
            not_recorded = ReturnError(
                ReturnErrorCode.PERSISTENCE_FAILURE,
                details={"loan_id": loan_id, "returned": True},
                message="Book was returned but the late fine could not be recorded; assess it manually",
            )
            try:
                fine = await self._fines.assess_fine(
                    returned,
                    base_rate_per_day=self._fine_rate,
                    reason=FineReason.LATE_RETURN,
                    now=now,
                )
            except StoreError:
                logger.exception(f"Loan {loan_id} returned but its late fine was not recorded")
                raise not_recorded
            try:
                returned = await self._add_fine(returned, doc.version, fine)
            except StoreError:
                logger.exception(f"Loan {loan_id} returned but fine {fine.id} was not added to it")
                if await self._discard_fine(fine):
                    raise not_recorded
                raise ReturnError(
                    ReturnErrorCode.PERSISTENCE_FAILURE,
                    details={"loan_id": loan_id, "returned": True, "fine_id": fine.id, "fine_recorded": True},
                    message=(
                        f"Book was returned and fine {fine.id} was recorded, but the loan's fine "
                        "total was not updated; do not assess it again"
                    ),
                )
        return returned

    async def _compensate_return(self, loan: LoanRecord, version: int) -> None:
        try:
            await self._write(loan, version)
        except StoreError as e:
            logger.error(
                f"Could not reopen loan {loan.id} after failed release: {e.message}. "
                "Counter drift left for the reconciliation sweep."
            )

    # ------------------------------------------------------------------
    # Fines
    # ------------------------------------------------------------------

    async def apply_fine(
        self,
        loan_id: str,
        reason: FineReason = FineReason.LATE_RETURN,
        manual_amount: Optional[Decimal] = None,
        discount: Decimal = Decimal("0"),
        now: Optional[datetime] = None,
    ) -> FineRecord:
        """Staff-initiated fine; the total is added to the loan's fine_amount."""
        now = ensure_utc(now) or utcnow()
        try:
            loan, version = await self._load(loan_id)
        except DocumentNotFoundError:
            raise FineError(FineErrorCode.LOAN_NOT_FOUND, details={"loan_id": loan_id})
        except StoreError:
            raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})
        try:
            fine = await self._fines.assess_fine(
                loan,
                base_rate_per_day=self._fine_rate,
                manual_amount=manual_amount,
                discount=discount,
                reason=reason,
                now=now,
            )
        except StoreError:
            raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})

        try:
            await self._add_fine(loan, version, fine)
        except StoreError as e:
            logger.warning(f"Could not add fine {fine.id} to loan {loan_id} ({e.message}), discarding it")
            if await self._discard_fine(fine):
                raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})
            raise FineError(
                FineErrorCode.PERSISTENCE_FAILURE,
                details={"loan_id": loan_id, "fine_id": fine.id, "recorded": True},
                message=(
                    f"Fine {fine.id} was recorded but the loan's fine total was not updated; "
                    "do not assess it again"
                ),
            )
        return fine

    async def _add_fine(self, loan: LoanRecord, version: int, fine: FineRecord) -> LoanRecord:
        """Accumulate a fine into the loan, re-reading on conflicts."""
        for attempt in range(1, self._max_retries + 1):
            updated = loan.evolve(fine_amount=to_money(loan.fine_amount + fine.total_amount))
            try:
                await self._write(updated, version)
                return updated
            except VersionConflictError:
                logger.debug(f"Loan {loan.id} changed while adding fine {fine.id} (attempt {attempt})")
                loan, version = await self._load(loan.id)
        raise StoreUnavailableError(
            f"Could not add fine {fine.id} to loan {loan.id} after {self._max_retries} attempts"
        )

    async def _discard_fine(self, fine: FineRecord) -> bool:
        """Remove a fine whose loan total could not be updated. False if it is still stored."""
        try:
            await self._fines.discard_fine(fine.id)
            return True
        except FineError as e:
            logger.error(
                f"Fine {fine.id} on loan {fine.loan_id} is recorded but not reflected "
                f"on the loan: {e.message}"
            )
            return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_loan(self, loan_id: str) -> LoanRecord:
        try:
            loan, _ = await self._load(loan_id)
        except DocumentNotFoundError:
            raise ReturnError(ReturnErrorCode.NOT_FOUND, details={"loan_id": loan_id})
        except StoreError:
            raise ReturnError(ReturnErrorCode.PERSISTENCE_FAILURE, details={"loan_id": loan_id})
        return loan

    async def list_open_loans(self, book_id: str) -> List[LoanRecord]:
        return await self._query(book_id=book_id, status=LoanStatus.BORROWED)

    async def list_loans_for_borrower(
        self, borrower_id: str, open_only: bool = False
    ) -> List[LoanRecord]:
        filters = {"borrower_id": borrower_id}
        if open_only:
            filters["status"] = LoanStatus.BORROWED
        return await self._query(**filters)

    async def list_overdue_loans(self, now: Optional[datetime] = None) -> List[LoanRecord]:
        """Open loans past their due date, most overdue first."""
        now = ensure_utc(now) or utcnow()
        loans = await self._query(status=LoanStatus.BORROWED)
        return sorted((loan for loan in loans if loan.is_overdue(now)), key=lambda loan: loan.due_date)

    # ------------------------------------------------------------------
    # Store helpers
    # ------------------------------------------------------------------

    async def _load(self, loan_id: str) -> tuple[LoanRecord, int]:
        doc = await with_timeout(self._store.get(LOANS, loan_id), self._timeout)
        return LoanRecord.from_document(doc), doc.version

    async def _write(self, loan: LoanRecord, version: int) -> Document:
        return await with_timeout(
            self._store.update(LOANS, loan.id, loan.to_data(), expected_version=version),
            self._timeout,
        )

    async def _query(self, **filters) -> List[LoanRecord]:
        docs = await with_timeout(self._store.query(LOANS, **filters), self._timeout)
        loans = [LoanRecord.from_document(doc) for doc in docs]
        return sorted(loans, key=lambda loan: loan.issue_date)
