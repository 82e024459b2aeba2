"""Book catalog API routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from circulation.core.security import get_current_user, require_staff
from circulation.dependencies import get_catalog_ledger, get_loan_manager
from circulation.schemas.book import BookAvailabilityView, BookCreate, BookRecord, BookStatus
from circulation.schemas.common import PaginatedResponse, utcnow
from circulation.schemas.loan import LoanResponse
from circulation.schemas.user import UserRecord
from circulation.services.catalog_ledger import CatalogLedger
from circulation.services.loan_manager import LoanManager

router = APIRouter(prefix="/books", tags=["Books"])


@router.post("", response_model=BookRecord, status_code=status.HTTP_201_CREATED)
async def add_book(
    book_data: BookCreate,
    staff: UserRecord = Depends(require_staff),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
) -> BookRecord:
    """Add a book, or add copies to an existing ISBN-13."""
    return await ledger.add_book(book_data)


@router.get("", response_model=PaginatedResponse[BookRecord])
async def list_books(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status_filter: Optional[BookStatus] = Query(None, alias="status"),
    current_user: UserRecord = Depends(get_current_user),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
) -> dict:
    """List catalog entries."""
    books = await ledger.list_books(status=status_filter)
    total = len(books)
    start = (page - 1) * page_size

    return {
        "items": books[start:start + page_size],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size,
    }


@router.get("/{book_id}", response_model=BookRecord)
async def get_book(
    book_id: str,
    current_user: UserRecord = Depends(get_current_user),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
) -> BookRecord:
    return await ledger.get_book(book_id)


@router.get("/{book_id}/availability", response_model=BookAvailabilityView)
async def get_availability(
    book_id: str,
    current_user: UserRecord = Depends(get_current_user),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
) -> BookAvailabilityView:
    """Copy counts for one book."""
    return await ledger.get_availability(book_id)


@router.get("/{book_id}/loans", response_model=List[LoanResponse])
async def list_book_loans(
    book_id: str,
    staff: UserRecord = Depends(require_staff),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
    loans: LoanManager = Depends(get_loan_manager),
) -> List[LoanResponse]:
    """Open loans against one book."""
    await ledger.get_book(book_id)
    now = utcnow()
    return [LoanResponse.from_record(loan, now) for loan in await loans.list_open_loans(book_id)]


@router.delete("/{book_id}", response_model=BookRecord)
async def withdraw_book(
    book_id: str,
    staff: UserRecord = Depends(require_staff),
    ledger: CatalogLedger = Depends(get_catalog_ledger),
) -> BookRecord:
    """Withdraw a book from circulation. The record and its history are kept."""
    return await ledger.withdraw_book(book_id)
