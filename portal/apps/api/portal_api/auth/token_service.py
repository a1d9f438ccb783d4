"""Session token issuance and validation.

Token states: Issued -> Valid -> Expired (terminal). There is no revoke;
expiry is the only way out of Valid, and it is evaluated lazily when the
token is looked up.

SECURITY:
- Token value: secrets.token_urlsafe(32) (256 random bits, 43 chars), unique
  constraint in the store
- Not-found and expired are distinct exceptions and log events, but the HTTP
  boundary answers both with the same 401
- Raw token values are never logged; a short sha256 fingerprint is used instead
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from portal_api.config.env import get_token_ttl_hours
from portal_api.db.models import Token
from portal_api.db.repository import Repository
from portal_api.errors import RandomSourceError, TokenExpired, TokenNotFound

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def fingerprint(token_value: str) -> str:
    """Short, non-reversible token fingerprint for log correlation."""
    return hashlib.sha256(token_value.encode("utf-8")).hexdigest()[:12]


def default_ttl() -> timedelta:
    return timedelta(hours=get_token_ttl_hours())


@dataclass(frozen=True)
class TokenValidation:
    """Result of a successful validate()."""

    user_id: int
    remaining_seconds: int
    expires_at: datetime


class TokenService:
    """Issues and validates opaque session tokens backed by the ``tokens`` table."""

    def __init__(self, db: Session):
        self.db = db
        self.tokens = Repository(db, Token)

    def issue(self, user_id: int, ttl: Optional[timedelta] = None) -> Token:
        """Create and persist a token for ``user_id``.

        Args:
            user_id: Owner of the token
            ttl: Lifetime (default: PORTAL_TOKEN_TTL_HOURS, 72h)

        Returns:
            The flushed Token row (caller commits)

        Raises:
            RandomSourceError: If no random value could be drawn
            PersistenceError: If the insert fails
        """
        lifetime = ttl if ttl is not None else default_ttl()
        try:
            value = secrets.token_urlsafe(TOKEN_BYTES)
        except (OSError, NotImplementedError) as e:
            raise RandomSourceError("Secure random source unavailable") from e

        now = datetime.now(timezone.utc)
        token = self.tokens.create(
            user_id=user_id,
            value=value,
            expires_at=now + lifetime,
        )

        logger.info(
            "token.issued",
            extra={
                "event": "token.issued",
                "token_id": token.id,
                "owner_id": user_id,
                "ttl_seconds": int(lifetime.total_seconds()),
            },
        )
        return token

    def validate(self, token_value: str) -> TokenValidation:
        """Resolve a token value to its owner.

        Raises:
            TokenNotFound: No row has this value
            TokenExpired: The row exists but now >= expires_at
        """
        token = self.tokens.get_by_field("value", token_value)

        if token is None:
            logger.warning(
                "token.validate.failed",
                extra={
                    "event": "token.validate.failed",
                    "reason": "not_found",
                    "token_fp": fingerprint(token_value),
                },
            )
            raise TokenNotFound("Token not found")

        now = datetime.now(timezone.utc)
        expires_at = as_utc(token.expires_at)
        if now >= expires_at:
            logger.warning(
                "token.validate.failed",
                extra={
                    "event": "token.validate.failed",
                    "reason": "expired",
                    "token_id": token.id,
                    "expires_at": expires_at.isoformat(),
                },
            )
            raise TokenExpired("Token expired")

        return TokenValidation(
            user_id=token.user_id,
            remaining_seconds=int((expires_at - now).total_seconds()),
            expires_at=expires_at,
        )
