"""Loan API routes."""
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from circulation.config import Settings
from circulation.core.exceptions import ValidationError
from circulation.core.security import get_current_user, require_staff
from circulation.dependencies import get_app_settings, get_loan_manager
from circulation.schemas.common import utcnow
from circulation.schemas.fine import FineAssessRequest, FineRecord
from circulation.schemas.loan import IssueRequest, LoanResponse
from circulation.schemas.user import UserRecord, UserRole
from circulation.services.loan_manager import LoanManager

router = APIRouter(prefix="/loans", tags=["Loans"])


def ensure_can_read(current_user: UserRecord, borrower_id: str) -> None:
    """Members may only see their own loans and fines."""
    if current_user.role == UserRole.MEMBER and current_user.id != borrower_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Members can only view their own records",
        )


@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def issue_book(
    request: IssueRequest,
    staff: UserRecord = Depends(require_staff),
    loans: LoanManager = Depends(get_loan_manager),
    settings: Settings = Depends(get_app_settings),
) -> LoanResponse:
    """Issue a book. The due date defaults to the standard loan period."""
    now = utcnow()
    due_date = request.due_date or now + timedelta(days=settings.default_loan_days)
    loan = await loans.issue_book(request.book_id, request.borrower_id, due_date, now=now)
    return LoanResponse.from_record(loan, now)


@router.get("", response_model=List[LoanResponse])
async def list_loans(
    borrower_id: Optional[str] = None,
    open_only: bool = False,
    current_user: UserRecord = Depends(get_current_user),
    loans: LoanManager = Depends(get_loan_manager),
) -> List[LoanResponse]:
    """List a borrower's loans; members default to their own."""
    if borrower_id is None:
        if current_user.role != UserRole.MEMBER:
            raise ValidationError("borrower_id is required", field="borrower_id")
        borrower_id = current_user.id
    ensure_can_read(current_user, borrower_id)

    now = utcnow()
    records = await loans.list_loans_for_borrower(borrower_id, open_only=open_only)
    return [LoanResponse.from_record(loan, now) for loan in records]


@router.get("/overdue", response_model=List[LoanResponse])
async def list_overdue(
    staff: UserRecord = Depends(require_staff),
    loans: LoanManager = Depends(get_loan_manager),
) -> List[LoanResponse]:
    """Open loans past due, most overdue first."""
    now = utcnow()
    return [LoanResponse.from_record(loan, now) for loan in await loans.list_overdue_loans(now)]


@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(
    loan_id: str,
    current_user: UserRecord = Depends(get_current_user),
    loans: LoanManager = Depends(get_loan_manager),
) -> LoanResponse:
    loan = await loans.get_loan(loan_id)
    ensure_can_read(current_user, loan.borrower_id)
    return LoanResponse.from_record(loan, utcnow())


@router.post("/{loan_id}/return", response_model=LoanResponse)
async def return_book(
    loan_id: str,
    staff: UserRecord = Depends(require_staff),
    loans: LoanManager = Depends(get_loan_manager),
) -> LoanResponse:
    """Return a loan; a late return records its fine."""
    now = utcnow()
    loan = await loans.return_book(loan_id, now=now)
    return LoanResponse.from_record(loan, now)


@router.post(
    "/{loan_id}/fines",
    response_model=FineRecord,
    status_code=status.HTTP_201_CREATED,
)
async def assess_fine(
    loan_id: str,
    request: FineAssessRequest,
    staff: UserRecord = Depends(require_staff),
    loans: LoanManager = Depends(get_loan_manager),
) -> FineRecord:
    """Charge a fine against a loan."""
    return await loans.apply_fine(
        loan_id,
        reason=request.reason,
        manual_amount=request.manual_amount,
        discount=request.discount,
    )
