"""Portal API - FastAPI Application Entry Point."""

import logging
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from portal_api.auth.session_auth import TOKEN_HEADER
from portal_api.config.env import get_cors_allowed_origins, get_log_level, is_json_logging_enabled
from portal_api.context import request_id_var, tenant_id_var, user_id_var
from portal_api.errors import InfrastructureError, PortalError
from portal_api.middleware import LoggingRedactionMiddleware
from portal_api.middleware.logging_redaction import get_safe_headers
from portal_api.routers import auth, features, health, subscriptions, tenants, users
from portal_api.routers.auth import COMPANY_HEADER
from portal_api.schemas import ProblemDetail
from portal_api.utils import configure_json_logging

PROBLEM_BASE_URL = "https://portal.dev/problems"

app = FastAPI(
    title="Portal API",
    description="Identity, session and entitlement core for multi-tenant SaaS: accounts, opaque session tokens, tenant resolution and feature entitlements.",
    version=health.API_VERSION,
    docs_url="/api-docs",
    redoc_url="/redoc",
)

# Set PORTAL_JSON_LOGS=false to disable (defaults to true)
if is_json_logging_enabled():
    configure_json_logging(log_level=get_log_level())

logger = logging.getLogger(__name__)

# Credentials mode cannot use wildcard origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", TOKEN_HEADER, COMPANY_HEADER, "X-Request-ID"],
    expose_headers=["X-Request-ID", "WWW-Authenticate"],
)
app.add_middleware(LoggingRedactionMiddleware)


# ============================================================================
# HTTP Request Completion Logging Middleware
# ============================================================================


@app.middleware("http")
async def http_completion_logging_middleware(request: Request, call_next):
    """Log every HTTP request completion.

    - Every HTTP request emits "http.request.completed"
    - Fields: method, path, status_code, duration_ms (request_id, user_id and
      tenant_id come from context via JSONFormatter)
    - Logs even on exceptions (status_code=500)
    - Per-request identity contextvars are cleared at start and end
    """
    user_id_var.set("")
    tenant_id_var.set("")

    start_time = time.perf_counter()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "http.request.completed",
            extra={
                "event": "http.request.completed",
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        user_id_var.set("")
        tenant_id_var.set("")


# ============================================================================
# Request ID Middleware (MUST BE OUTERMOST)
# ============================================================================


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Generate and propagate request_id.

    - Accepts X-Request-ID header from client (optional)
    - Generates a UUID v4 if not provided
    - Returns X-Request-ID in response headers

    Registered last so it runs outermost and the contextvar is set before
    inner middlewares execute.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request_id_var.set(request_id)

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ============================================================================
# RFC 9457 Global Exception Handlers
# ============================================================================


def _instance() -> str:
    """Opaque instance identifier (urn:portal:trace:{request_id})."""
    request_id = request_id_var.get()
    return f"urn:portal:trace:{request_id or uuid.uuid4()}"


def _problem_response(problem: ProblemDetail, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    """Map domain errors to Problem Details.

    Infrastructure failures are logged with their real message and answered
    with a generic 500 body.
    """
    detail = exc.detail
    if isinstance(exc, InfrastructureError):
        logger.error(
            "request.infrastructure_error",
            extra={
                "event": "request.infrastructure_error",
                "error_type": type(exc).__name__,
                "error_detail": exc.detail,
                "path": request.url.path,
            },
        )
        detail = "An unexpected error occurred. Please try again later."

    headers = {"WWW-Authenticate": TOKEN_HEADER} if exc.status_code == 401 else None
    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URL}/{exc.problem_type}",
        title=exc.title,
        status=exc.status_code,
        detail=detail,
        instance=_instance(),
    )
    return _problem_response(problem, headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with RFC 9457 Problem Details format.

    A dict detail that is already a problem document (auth failures) is
    emitted as-is; anything else is wrapped.
    """
    if isinstance(exc.detail, dict) and "type" in exc.detail and "status" in exc.detail:
        content = dict(exc.detail)
        content.setdefault("instance", _instance())
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            media_type="application/problem+json",
            headers=getattr(exc, "headers", None),
        )

    detail_value = exc.detail if exc.detail is not None else _get_title_for_status(exc.status_code)
    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URL}/http-{exc.status_code}",
        title=_get_title_for_status(exc.status_code),
        status=exc.status_code,
        detail=detail_value,
        instance=_instance(),
    )
    return _problem_response(problem, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors (422) with Problem Details format."""
    first_error = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []))
    msg = first_error.get("msg", "Validation error")

    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URL}/request-validation",
        title="Request Validation Failed",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Invalid field '{field}': {msg}",
        instance=_instance(),
    )
    return _problem_response(problem)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions (500) with Problem Details format."""
    logger.error(
        "request.unhandled_exception",
        exc_info=True,
        extra={
            "event": "request.unhandled_exception",
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "headers": get_safe_headers(request),
        },
    )
    problem = ProblemDetail(
        type=f"{PROBLEM_BASE_URL}/internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        instance=_instance(),
    )
    return _problem_response(problem)


def _get_title_for_status(status_code: int) -> str:
    """Get human-readable title for HTTP status code."""
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return titles.get(status_code, f"HTTP {status_code}")


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(tenants.router)
app.include_router(tenants.companies_router)
app.include_router(features.router)
app.include_router(subscriptions.router)
