"""FastAPI application entry point."""
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from coop_billing.config import settings
from coop_billing.exceptions import (
    ConflictError,
    LedgerImmutableError,
    NotFoundError,
    PreconditionFailedError,
)
from coop_billing.middleware.logging import LoggingMiddleware, setup_logging
from coop_billing.middleware.metrics import MetricsMiddleware
from coop_billing.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    logger.info("application_shutting_down")


app = FastAPI(
    title="Cooperative Billing Service",
    description="Plan templates, seat entitlements and offline payment confirmation for cooperatives",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id") or structlog.contextvars.get_contextvars().get(
        "request_id", f"req_{uuid.uuid4().hex[:12]}"
    )


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    code: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=[ErrorDetail(code=code, message=message)],
        remediation=REMEDIATION_HINTS.get(code),
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Referenced organization, member, invoice, payment or template is absent."""
    logger.info("billing_not_found", path=request.url.path, message=str(exc))
    return _error_response(request, status.HTTP_404_NOT_FOUND, "NotFound", str(exc), ErrorCode.NOT_FOUND)


@app.exception_handler(PreconditionFailedError)
async def precondition_failed_handler(request: Request, exc: PreconditionFailedError) -> JSONResponse:
    """Capacity exhausted, inactive member or mismatched payment."""
    message = str(exc)
    if "seats remaining" in message:
        code = ErrorCode.NO_SEATS_REMAINING
    elif "active members" in message:
        code = ErrorCode.MEMBER_NOT_ACTIVE
    else:
        code = ErrorCode.PRECONDITION_FAILED
    logger.info("billing_precondition_failed", path=request.url.path, message=message, code=code)
    return _error_response(request, status.HTTP_409_CONFLICT, "PreconditionFailed", message, code)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """Retries exhausted against concurrent writers."""
    logger.warning("billing_conflict", path=request.url.path)
    return _error_response(
        request,
        status.HTTP_409_CONFLICT,
        "Conflict",
        str(exc),
        ErrorCode.CONCURRENT_UPDATE,
        headers={"Retry-After": "1"},
    )


@app.exception_handler(LedgerImmutableError)
async def ledger_immutable_handler(request: Request, exc: LedgerImmutableError) -> JSONResponse:
    """Attempted rewrite of an audit entry."""
    logger.error("ledger_rewrite_blocked", path=request.url.path)
    return _error_response(request, status.HTTP_409_CONFLICT, "LedgerImmutable", str(exc), ErrorCode.LEDGER_IMMUTABLE)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Any other rejected input."""
    logger.info("billing_bad_request", path=request.url.path, message=str(exc))
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "BadRequest", str(exc), ErrorCode.PRECONDITION_FAILED)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with field-level validation errors.
    """
    code_mapping = {
        "enum": ErrorCode.INVALID_ENUM_VALUE,
        "literal_error": ErrorCode.INVALID_ENUM_VALUE,
        "missing": ErrorCode.MISSING_REQUIRED_FIELD,
        "greater_than_equal": ErrorCode.VALUE_TOO_SMALL,
        "uuid_parsing": ErrorCode.INVALID_UUID,
    }

    details = [
        ErrorDetail(
            code=code_mapping.get(error["type"], "validation_error"),
            message=error["msg"],
            field=".".join(str(loc) for loc in error["loc"]),
            value=error.get("input"),
        ).model_dump(mode="json")
        for error in exc.errors()
    ]

    request_id = _request_id(request)
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_count=len(details),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "details": details,
            "remediation": "Check the API documentation for correct request format at /docs",
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Returns 503 Service Unavailable for database failures."""
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)
    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DatabaseError",
        message,
        ErrorCode.DATABASE_ERROR,
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the stack trace but returns a safe message to the client.
    """
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
    )
    message = str(exc) if settings.debug else "Internal server error"
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        message,
        ErrorCode.INTERNAL_ERROR,
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Cooperative Billing Service",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Include routers
from coop_billing.api.v1 import billing, health, organizations, plan_templates  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(organizations.router, prefix="/v1")
app.include_router(plan_templates.router, prefix="/v1")
app.include_router(billing.router, prefix="/v1")
