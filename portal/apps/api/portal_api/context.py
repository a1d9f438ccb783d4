"""Request context management for observability.

Context variables for request tracking across async boundaries.
"""

from contextvars import ContextVar

# Request ID - unique per HTTP request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# User ID - set once the session token has been validated
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

# Tenant ID - set once a company header has been resolved to a tenant
tenant_id_var: ContextVar[str] = ContextVar("tenant_id", default="")
