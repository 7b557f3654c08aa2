"""Family Portal: Main FastAPI Application.

Backend for a private family community: members submit family-tree entries,
membership requests, gallery photos, notices and events; admins and
publishers review them, and every decision fans out as in-app notifications.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import async_session_factory, close_db, get_settings, init_db
from .schemas import ErrorDetail, ErrorResponse
from .services import (
    ApprovalError,
    DirectoryError,
    InvalidStateError,
    PromotionError,
    RequestNotFoundError,
    StorageError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
    build_services,
)

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Services installed before startup belong to the caller, database included
    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        # Skip init_db in production (tables come from migrations)
        if settings.environment != "production":
            try:
                await init_db()
            except Exception as e:
                logger.warning(f"Could not initialize database: {e}")
        app.state.services = build_services(settings, async_session_factory)
    yield
    # Shutdown
    if owns_services:
        await app.state.services.close()
        await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Family Portal API

    Review workflow and notifications for a private family community.

    ### Key Features

    - **Request Review**: Family-tree entries, membership requests, gallery photos,
      notices and events start as pending and are approved or rejected by admins
      and publishers.
    - **Promotion**: Approving a family-member request publishes it to the family tree.
    - **Notifications**: Admins hear about new requests; submitters hear about decisions.
    - **Live Updates**: WebSocket push for notifications and pending counts.

    ### Authentication

    Endpoints take a JWT in the `Authorization: Bearer <token>` header.
    WebSocket endpoints take the same token as a `token` query parameter.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=86400,
)

app.include_router(api_router, prefix=settings.api_prefix)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

# (status code, error code) per exception type; first match wins
ERROR_STATUS: list[tuple[type[ApprovalError], int, str]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT, "validation_error"),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN, "unauthorized"),
    (RequestNotFoundError, status.HTTP_404_NOT_FOUND, "not_found"),
    (UserNotFoundError, status.HTTP_404_NOT_FOUND, "user_not_found"),
    (InvalidStateError, status.HTTP_409_CONFLICT, "already_handled"),
    (PromotionError, status.HTTP_502_BAD_GATEWAY, "promotion_failed"),
    (StorageError, status.HTTP_502_BAD_GATEWAY, "storage_error"),
    (DirectoryError, status.HTTP_503_SERVICE_UNAVAILABLE, "directory_unavailable"),
]


@app.exception_handler(ApprovalError)
async def approval_error_handler(request: Request, exc: ApprovalError):
    """Map workflow errors to HTTP responses."""
    status_code, error = status.HTTP_400_BAD_REQUEST, "approval_error"
    for exc_type, code, name in ERROR_STATUS:
        if isinstance(exc, exc_type):
            status_code, error = code, name
            break

    details: list[ErrorDetail] = []
    if isinstance(exc, ValidationError):
        details = [
            ErrorDetail(field=e.get("field"), message=e.get("message", ""), code="invalid")
            for e in exc.errors
        ]
    elif isinstance(exc, PromotionError) and exc.request_id:
        details = [ErrorDetail(field="request_id", message=exc.request_id, code="retryable")]

    if status_code >= 500:
        logger.error(f"{error} on {request.method} {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=str(exc), details=details).model_dump(),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
    message = str(exc)[:200] if settings.debug else "An unexpected error occurred"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=message,
            details=[],
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "family_portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
