"""FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from circulation.api import api_router
from circulation.config import settings
from circulation.core.exceptions import AppException
from circulation.core.logging import get_logger, setup_logging
from circulation.database import close_db, init_db

logger = get_logger("api")

# error_code -> HTTP status; anything unlisted is a client error
ERROR_STATUS = {
    "AUTH_ERROR": 401,
    "AUTHZ_ERROR": 403,
    "NOT_FOUND": 404,
    "BOOK_NOT_FOUND": 404,
    "BORROWER_NOT_FOUND": 404,
    "LOAN_NOT_FOUND": 404,
    "STORE_NOT_FOUND": 404,
    "CONFLICT": 409,
    "OUT_OF_STOCK": 409,
    "ALREADY_BORROWED": 409,
    "ALREADY_RETURNED": 409,
    "ALREADY_PAID": 409,
    "BORROWER_SUSPENDED": 409,
    "BOOK_UNAVAILABLE": 409,
    "INVALID_STATE": 409,
    "STORE_CONFLICT": 409,
    "VALIDATION_ERROR": 422,
    "INVALID_DUE_DATE": 422,
    "PERSISTENCE_FAILURE": 503,
    "STORE_UNAVAILABLE": 503,
    "DESERIALIZATION_ERROR": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown."""
    # Startup
    setup_logging(settings.log_level)
    if settings.store_backend == "sql":
        await init_db()
    logger.info(f"{settings.app_name} started with {settings.store_backend} store")
    yield
    # Shutdown
    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Library circulation: catalog ledger, loans and fines",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handle application exceptions."""
    status_code = ERROR_STATUS.get(exc.error_code, 400)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    if settings.debug:
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
            },
        )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# Include API router
app.include_router(api_router)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs" if settings.debug else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "circulation.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
