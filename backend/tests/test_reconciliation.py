"""Reconciliation sweep tests."""
from datetime import datetime, timedelta, timezone

import pytest

from circulation.core.exceptions import ReturnError
from circulation.schemas.book import BookCreate
from circulation.store import BOOKS, LOANS

NOW = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
DUE = NOW + timedelta(days=14)


@pytest.mark.asyncio
async def test_clean_ledger_reports_nothing(sweep, loan_manager, book, member):
    await loan_manager.issue_book(book.id, member.id, DUE, now=NOW)
    assert await sweep.run() == []


@pytest.mark.asyncio
async def test_detects_and_corrects_failed_compensation(
    store, sweep, loan_manager, ledger, book, member
):
    loan = await loan_manager.issue_book(book.id, member.id, DUE, now=NOW)
    # The release fails, then so does reopening the loan
    store.fail("update", BOOKS, times=3)
    store.fail("update", LOANS, times=1, skip=1)
    with pytest.raises(ReturnError):
        await loan_manager.return_book(loan.id, now=NOW + timedelta(days=1))

    # Loan is closed but the ledger still counts the copy as borrowed
    assert (await ledger.get_book(book.id)).currently_borrowed == 1
    assert await loan_manager.list_open_loans(book.id) == []

    reports = await sweep.run()
    assert len(reports) == 1
    assert reports[0].book_id == book.id
    assert reports[0].currently_borrowed == 1
    assert reports[0].open_loans == 0
    assert reports[0].corrected is False
    assert (await ledger.get_book(book.id)).currently_borrowed == 1

    corrected = await sweep.run(correct=True)
    assert corrected[0].corrected is True
    repaired = await ledger.get_book(book.id)
    assert repaired.currently_borrowed == 0
    assert repaired.available_quantity == 1
    assert await sweep.run() == []


@pytest.mark.asyncio
async def test_only_drifting_books_are_reported(sweep, ledger, loan_manager, book, member):
    other = await ledger.add_book(BookCreate(isbn13="9780262033848", title="Algorithms", quantity=2))
    await loan_manager.issue_book(book.id, member.id, DUE, now=NOW)
    await ledger.reserve_copy(other.id)

    reports = await sweep.run()
    assert [r.book_id for r in reports] == [other.id]
    assert reports[0].open_loans == 0
