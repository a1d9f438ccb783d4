"""Session authentication for protected endpoints.

FLOW:
1. User logs in via POST /v1/auth/login -> receives an opaque session token
2. Client calls a protected endpoint with header ``Token: <value>``
3. ``require_identity`` validates the token through TokenService
4. The handler receives an IdentityContext parameter; no other path carries
   identity into protected routes

SECURITY:
- Unknown and expired tokens get the same 401 body (no enumeration oracle)
- Failure reasons are still logged distinctly (token.validate.failed)
- The wrapped handler is never invoked on failure
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from portal_api.auth.token_service import TokenService
from portal_api.context import request_id_var, user_id_var
from portal_api.db.session import get_db
from portal_api.errors import TokenExpired, TokenNotFound
from portal_api.schemas import ProblemDetail

logger = logging.getLogger(__name__)

TOKEN_HEADER = "Token"

# APIKeyHeader scheme so the header shows up in OpenAPI docs
token_header_scheme = APIKeyHeader(
    name=TOKEN_HEADER,
    auto_error=False,
    description="Opaque session token issued by POST /v1/auth/login",
)


@dataclass(frozen=True)
class IdentityContext:
    """Authenticated caller, passed explicitly to handlers."""

    user_id: int
    token_remaining_seconds: int


def create_auth_problem(detail: str) -> HTTPException:
    """Create a 401 RFC 9457 Problem Detail carrying ``WWW-Authenticate: Token``."""
    request_id = request_id_var.get()
    problem = ProblemDetail(
        type="https://portal.dev/problems/unauthorized",
        title="Unauthorized",
        status=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        instance=f"urn:portal:trace:{request_id}" if request_id else None,
    )
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=problem.model_dump(exclude_none=True),
        headers={"WWW-Authenticate": TOKEN_HEADER},
    )


def authenticate_token(db: Session, token_value: Optional[str]) -> IdentityContext:
    """Validate a raw header value and build the identity context.

    Raises:
        HTTPException: 401 when the header is missing, unknown or expired
    """
    if not token_value:
        raise create_auth_problem("Token is required")

    try:
        validation = TokenService(db).validate(token_value)
    except (TokenNotFound, TokenExpired):
        raise create_auth_problem("Invalid or expired token") from None

    user_id_var.set(str(validation.user_id))
    return IdentityContext(
        user_id=validation.user_id,
        token_remaining_seconds=validation.remaining_seconds,
    )


async def require_identity(
    request: Request,
    token_value: Optional[str] = Depends(token_header_scheme),
    db: Session = Depends(get_db),
) -> IdentityContext:
    """FastAPI dependency guarding protected routes.

    Returns:
        IdentityContext for the token owner

    Raises:
        HTTPException: 401 (RFC 9457) if authentication fails
    """
    identity = authenticate_token(db, token_value)
    logger.debug(
        "session.authenticated",
        extra={"event": "session.authenticated", "path": request.url.path},
    )
    return identity
