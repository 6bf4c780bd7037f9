"""Structured logging setup and per-request billing context."""
import logging
import re
import sys
import time
import uuid
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from coop_billing.config import settings

# /v1/orgs/{org_id}/... ; member ids further down the path are left to the handlers
ORG_PATH = re.compile(r"^/v\d+/orgs/(?P<org_id>[0-9a-fA-F-]{32,36})(?:/|$)")

QUIET_PATHS = ("/health", "/metrics")


def setup_logging() -> None:
    """Configure structlog on top of stdlib logging: JSON in production, console otherwise."""
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.app_env == "production":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=settings.debug))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)


def request_context(request: Request, request_id: str) -> dict[str, Any]:
    """
    Context bound to every log line written while handling a request.

    Billing and roster routes are scoped by organization, so the org id is
    lifted from the path before routing. The caller's uid is bound later by
    the auth dependency, once the token has been verified.
    """
    context: dict[str, Any] = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
    }
    match = ORG_PATH.match(request.url.path)
    if match:
        context["org_id"] = match.group("org_id")
    return context


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds request and organization context, then logs each request's outcome.

    An incoming X-Request-ID is reused so that one id follows a payment
    confirmation across services; otherwise a new one is issued.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**request_context(request, request_id))
        logger = structlog.get_logger(__name__)
        quiet = request.url.path.startswith(QUIET_PATHS)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("request_failed", exc_info=exc)
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        if not quiet:
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        return response
