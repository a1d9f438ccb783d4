"""Account flows: registration, login, password change.

Each public method is one unit of work: it composes the credential
primitives, TokenService and TenantResolver, then commits once. Any domain
error rolls the whole unit back.

Passwords arrive base64-encoded and are decoded here; plaintext is never
logged or persisted.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import NoReturn, Optional

from sqlalchemy.orm import Session

from portal_api.auth.credentials import generate_salt, hash_password, verify_password
from portal_api.auth.token_service import TokenService
from portal_api.db.models import USER_TYPES, Credential, Token, User
from portal_api.db.repository import Repository, commit
from portal_api.errors import AuthenticationError, PortalError, ValidationError
from portal_api.tenants.resolver import TenantResolver

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MOBILE_PATTERN = re.compile(r"^\d{10,15}$")

INVALID_CREDENTIALS = "Invalid credentials"


def decode_password(encoded: str) -> str:
    """Decode a base64 password field.

    Raises:
        ValidationError: Not valid base64, or not UTF-8 once decoded
    """
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid password encoding") from None


def classify_identifier(credential: str) -> Optional[str]:
    """Return the User column a login identifier refers to, or None."""
    if EMAIL_PATTERN.match(credential):
        return "email"
    if MOBILE_PATTERN.match(credential):
        return "mobile_number"
    return None


@dataclass(frozen=True)
class LoginResult:
    token: Token
    user: User


class AccountService:
    def __init__(self, db: Session, token_ttl: Optional[timedelta] = None):
        self.db = db
        self.token_ttl = token_ttl
        self.users = Repository(db, User)
        self.credentials = Repository(db, Credential)
        self.token_service = TokenService(db)
        self.resolver = TenantResolver(db)

    def register(
        self,
        *,
        name: str,
        password_b64: str,
        user_type: str,
        email: Optional[str] = None,
        mobile_number: Optional[str] = None,
    ) -> User:
        """Create a user with its credential and bootstrap entitlements.

        Raises:
            ValidationError: Bad type, bad encoding, no identifier
            UniquenessViolation: Email or mobile already registered
            BootstrapEntitlementMissing: Default tenant / demo subscription absent
        """
        if user_type not in USER_TYPES:
            raise ValidationError("Invalid user type")
        if not email and not mobile_number:
            raise ValidationError("Either email or mobile_number is required")
        if email and not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email address")
        if mobile_number and not MOBILE_PATTERN.match(mobile_number):
            raise ValidationError("Invalid mobile number")
        plaintext = decode_password(password_b64)

        try:
            user = self.users.create(
                email=email,
                mobile_number=mobile_number,
                name=name,
                type=user_type,
            )
            salt = generate_salt()
            self.credentials.create(
                user_id=user.id,
                salt=salt,
                password_hash=hash_password(plaintext, salt),
            )
            self.resolver.bootstrap_registration(user.id)
            commit(self.db)
        except PortalError as e:
            self.db.rollback()
            logger.warning(
                "auth.register.failed",
                extra={"event": "auth.register.failed", "error_type": type(e).__name__},
            )
            raise

        logger.info(
            "auth.register.success",
            extra={"event": "auth.register.success", "owner_id": user.id, "user_type": user_type},
        )
        return user

    def login(self, credential: str, password_b64: str) -> LoginResult:
        """Authenticate by email or mobile number and issue a session token.

        Every authentication failure raises the same AuthenticationError;
        the reason is only logged.

        Raises:
            ValidationError: Password is not valid base64
            AuthenticationError: Unknown identifier, wrong password, inactive user
        """
        plaintext = decode_password(password_b64)

        field = classify_identifier(credential)
        if field is None:
            self._login_failed("malformed_identifier")

        user = self.users.get_by_field(field, credential)
        if user is None:
            self._login_failed("unknown_identifier")
        if not user.is_active:
            self._login_failed("inactive_user", user.id)

        stored = self.credentials.get_by_field("user_id", user.id)
        if stored is None:
            self._login_failed("no_credential", user.id)
        if not verify_password(plaintext, stored.salt, stored.password_hash):
            self._login_failed("bad_password", user.id)

        try:
            token = self.token_service.issue(user.id, self.token_ttl)
            self.users.update_one(user, {"last_login": datetime.now(timezone.utc)})
            commit(self.db)
        except PortalError:
            self.db.rollback()
            raise

        logger.info(
            "auth.login.success",
            extra={"event": "auth.login.success", "owner_id": user.id, "identifier_kind": field},
        )
        return LoginResult(token=token, user=user)

    def change_password(self, user_id: int, old_password_b64: str, new_password_b64: str) -> None:
        """Replace a user's credential after checking the current password.

        A fresh salt is generated; the old salt is never reused.

        Raises:
            ValidationError: Either password is not valid base64
            AuthenticationError: Old password does not match
        """
        old_plaintext = decode_password(old_password_b64)
        new_plaintext = decode_password(new_password_b64)

        stored = self.credentials.get_by_field("user_id", user_id)
        if stored is None or not verify_password(old_plaintext, stored.salt, stored.password_hash):
            logger.warning(
                "auth.password_change.failed",
                extra={"event": "auth.password_change.failed", "owner_id": user_id},
            )
            raise AuthenticationError("Incorrect old password")

        salt = generate_salt()
        try:
            self.credentials.update_one(
                stored,
                {"salt": salt, "password_hash": hash_password(new_plaintext, salt)},
            )
            commit(self.db)
        except PortalError:
            self.db.rollback()
            raise

        logger.info(
            "auth.password_change.success",
            extra={"event": "auth.password_change.success", "owner_id": user_id},
        )

    def _login_failed(self, reason: str, user_id: Optional[int] = None) -> NoReturn:
        logger.warning(
            "auth.login.failed",
            extra={"event": "auth.login.failed", "reason": reason, "owner_id": user_id},
        )
        raise AuthenticationError(INVALID_CREDENTIALS)
