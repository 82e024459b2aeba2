"""API routers."""
from fastapi import APIRouter

from circulation.api import admin, books, fines, loans
from circulation.schemas.common import ErrorResponse

api_router = APIRouter(
    prefix="/api/v1",
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)

api_router.include_router(books.router)
api_router.include_router(loans.router)
api_router.include_router(fines.router)
api_router.include_router(admin.router)

__all__ = ["api_router"]
