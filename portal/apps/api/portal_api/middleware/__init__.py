"""Middleware modules."""

from .logging_redaction import LoggingRedactionMiddleware

__all__ = ["LoggingRedactionMiddleware"]
