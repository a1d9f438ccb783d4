"""Domain error taxonomy.

Every failure raised by the identity, session and entitlement core derives
from ``PortalError``. Each class carries the HTTP mapping used by the app-wide
RFC 9457 handler in ``portal_api.main``; the core itself never imports FastAPI.

    PortalError
    ├── ValidationError              400  malformed input
    ├── AuthenticationError          401  bad credentials
    ├── NotFoundError                404  unknown row
    │   ├── TokenNotFound            401
    │   ├── UnknownTenant
    │   └── NotAMember
    ├── ExpiredError                 401
    │   └── TokenExpired
    ├── UniquenessViolation          409
    │   └── DuplicateGrant
    └── InfrastructureError          500
        ├── PersistenceError
        ├── RandomSourceError
        ├── HashingError
        └── BootstrapEntitlementMissing
"""

from typing import Any, Optional


class PortalError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    title: str = "Internal Server Error"
    problem_type: str = "internal-error"

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context


class ValidationError(PortalError):
    """Malformed input (bad encoding, missing header, unknown enum value)."""

    status_code = 400
    title = "Bad Request"
    problem_type = "validation-error"


class AuthenticationError(PortalError):
    """Credentials did not authenticate (login, password change)."""

    status_code = 401
    title = "Unauthorized"
    problem_type = "unauthorized"


class NotFoundError(PortalError):
    status_code = 404
    title = "Not Found"
    problem_type = "not-found"


class TokenNotFound(NotFoundError):
    """No token row matches the supplied value."""

    status_code = 401
    title = "Unauthorized"
    problem_type = "unauthorized"


class UnknownTenant(NotFoundError):
    """No tenant has the supplied company GUID."""


class NotAMember(NotFoundError):
    """Tenant exists but the user has no membership row for it."""


class ExpiredError(PortalError):
    status_code = 401
    title = "Unauthorized"
    problem_type = "unauthorized"


class TokenExpired(ExpiredError):
    """Token row exists but ``now >= expires_at``."""


class UniquenessViolation(PortalError):
    """The store rejected a row that would break a unique constraint."""

    status_code = 409
    title = "Conflict"
    problem_type = "conflict"

    def __init__(self, detail: str, constraint: Optional[str] = None, **context: Any):
        super().__init__(detail, **context)
        self.constraint = constraint


class DuplicateGrant(UniquenessViolation):
    """A mapping row for the same pair already exists."""


class InfrastructureError(PortalError):
    """Store, RNG or hashing failure. Surfaced as a server error, never retried here."""


class PersistenceError(InfrastructureError):
    pass


class RandomSourceError(InfrastructureError):
    pass


class HashingError(InfrastructureError):
    pass


class BootstrapEntitlementMissing(InfrastructureError):
    """The reserved default tenant or demo subscription is absent from the store."""
