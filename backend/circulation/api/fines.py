"""Fine API routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from circulation.api.loans import ensure_can_read
from circulation.core.exceptions import ValidationError
from circulation.core.security import get_current_user, require_staff
from circulation.dependencies import get_fine_engine
from circulation.schemas.fine import FineRecord, FineStatus, OutstandingFines
from circulation.schemas.user import UserRecord, UserRole
from circulation.services.fine_engine import FineEngine

router = APIRouter(prefix="/fines", tags=["Fines"])


@router.post("/{fine_id}/pay", response_model=FineRecord)
async def pay_fine(
    fine_id: str,
    staff: UserRecord = Depends(require_staff),
    fines: FineEngine = Depends(get_fine_engine),
) -> FineRecord:
    """Mark a fine as paid."""
    return await fines.mark_paid(fine_id)


@router.get("", response_model=List[FineRecord])
async def list_fines(
    borrower_id: Optional[str] = None,
    status_filter: Optional[FineStatus] = Query(None, alias="status"),
    current_user: UserRecord = Depends(get_current_user),
    fines: FineEngine = Depends(get_fine_engine),
) -> List[FineRecord]:
    if borrower_id is None:
        if current_user.role != UserRole.MEMBER:
            raise ValidationError("borrower_id is required", field="borrower_id")
        borrower_id = current_user.id
    ensure_can_read(current_user, borrower_id)
    return await fines.list_fines(borrower_id=borrower_id, status=status_filter)


@router.get("/outstanding/{borrower_id}", response_model=OutstandingFines)
async def outstanding_fines(
    borrower_id: str,
    current_user: UserRecord = Depends(get_current_user),
    fines: FineEngine = Depends(get_fine_engine),
) -> OutstandingFines:
    """Total of a borrower's unpaid fines."""
    ensure_can_read(current_user, borrower_id)
    count, total = await fines.outstanding_total(borrower_id)
    return OutstandingFines(borrower_id=borrower_id, unpaid_count=count, total=total)
