"""Admin API routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from circulation.core.security import get_admin_user
from circulation.dependencies import get_directory, get_reconciliation_sweep
from circulation.schemas.common import PaginatedResponse
from circulation.schemas.user import UserCreate, UserRecord, UserRole
from circulation.services.directory import DocumentUserDirectory
from circulation.services.reconciliation import DriftReport, ReconciliationSweep

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/users", response_model=UserRecord, status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: UserCreate,
    admin: UserRecord = Depends(get_admin_user),
    directory: DocumentUserDirectory = Depends(get_directory),
) -> UserRecord:
    """Register a library account (admin only)."""
    return await directory.register(user_data)


@router.get("/users", response_model=PaginatedResponse[UserRecord])
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    role_filter: Optional[UserRole] = None,
    admin: UserRecord = Depends(get_admin_user),
    directory: DocumentUserDirectory = Depends(get_directory),
) -> dict:
    """List all users (admin only)."""
    users = await directory.list_users(role=role_filter)
    users.sort(key=lambda u: u.created_at, reverse=True)
    total = len(users)
    start = (page - 1) * page_size

    return {
        "items": users[start:start + page_size],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size,
    }


@router.post("/users/{user_id}/suspend", response_model=UserRecord)
async def suspend_user(
    user_id: str,
    admin: UserRecord = Depends(get_admin_user),
    directory: DocumentUserDirectory = Depends(get_directory),
) -> UserRecord:
    """Suspend an account; suspended borrowers cannot be issued books."""
    return await directory.set_suspended(user_id, True)


@router.post("/users/{user_id}/reinstate", response_model=UserRecord)
async def reinstate_user(
    user_id: str,
    admin: UserRecord = Depends(get_admin_user),
    directory: DocumentUserDirectory = Depends(get_directory),
) -> UserRecord:
    return await directory.set_suspended(user_id, False)


@router.post("/reconcile", response_model=List[DriftReport])
async def reconcile(
    correct: bool = False,
    admin: UserRecord = Depends(get_admin_user),
    sweep: ReconciliationSweep = Depends(get_reconciliation_sweep),
) -> List[DriftReport]:
    """Report (and optionally correct) borrowed-counter drift."""
    return await sweep.run(correct=correct)
