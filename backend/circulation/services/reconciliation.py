"""Sweep that finds and repairs drift between loans and ledger counters."""
from typing import List

from pydantic import BaseModel

from circulation.core.logging import get_logger
from circulation.services.catalog_ledger import CatalogLedger
from circulation.services.loan_manager import LoanManager

logger = get_logger("reconciliation")


class DriftReport(BaseModel):
    """One book whose borrowed counter disagrees with its open loans."""

    book_id: str
    isbn13: str
    currently_borrowed: int
    open_loans: int
    corrected: bool = False


class ReconciliationSweep:
    """
    Compares each book's ``currently_borrowed`` with its open loans.

    Drift appears only when a compensation step itself failed, so the sweep
    is expected to come back empty on a healthy system.
    """

    def __init__(self, ledger: CatalogLedger, loans: LoanManager):
        self._ledger = ledger
        self._loans = loans

    async def run(self, correct: bool = False) -> List[DriftReport]:
        reports = []
        for book in await self._ledger.list_books():
            open_loans = len(await self._loans.list_open_loans(book.id))
            if open_loans == book.currently_borrowed:
                continue

            report = DriftReport(
                book_id=book.id,
                isbn13=book.isbn13,
                currently_borrowed=book.currently_borrowed,
                open_loans=open_loans,
            )
            logger.warning(
                f"Drift on book {book.id}: currently_borrowed={book.currently_borrowed} "
                f"open_loans={open_loans}"
            )
            if correct:
                await self._ledger.correct_borrowed_count(book.id, open_loans)
                report.corrected = True
            reports.append(report)

        logger.info(f"Reconciliation finished: {len(reports)} drifting book(s), correct={correct}")
        return reports
