"""Logging Redaction Middleware.

Session tokens travel in the ``Token`` header and must never reach the logs
in plain text. The middleware builds a redacted copy of the request headers
and stores it on ``request.state``; handlers that want to log headers read
that copy through ``get_safe_headers``. Authentication still sees the
original headers.

Usage:
    app.add_middleware(LoggingRedactionMiddleware)
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from portal_api.utils.sanitize import REDACTED

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset(
    {
        "token",  # Session token
        "authorization",
        "proxy-authorization",
        "cookie",
    }
)


def redact_headers(headers) -> dict[str, str]:
    """Copy of ``headers`` with sensitive values replaced."""
    return {
        name: (REDACTED if name.lower() in SENSITIVE_HEADERS else value)
        for name, value in headers.items()
    }


class LoggingRedactionMiddleware(BaseHTTPMiddleware):
    """Attach a redacted header map to every request."""

    def __init__(self, app):
        super().__init__(app)
        logger.info(
            "LoggingRedactionMiddleware initialized",
            extra={
                "event": "middleware.logging_redaction.init",
                "redacted_headers": sorted(SENSITIVE_HEADERS),
            },
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.redacted_headers = redact_headers(request.headers)
        return await call_next(request)


def get_safe_headers(request: Request) -> dict[str, str]:
    """Headers safe for logging.

    Falls back to redacting on the spot when the middleware is not installed.

    Example:
        logger.info("Request headers", extra={"headers": get_safe_headers(request)})
    """
    redacted = getattr(request.state, "redacted_headers", None)
    if redacted is not None:
        return redacted
    return redact_headers(request.headers)
