"""Utility functions and helpers."""

from portal_api.utils.logging import JSONFormatter, configure_json_logging
from portal_api.utils.sanitize import sanitize_obj, sanitize_str

__all__ = [
    "JSONFormatter",
    "configure_json_logging",
    "sanitize_obj",
    "sanitize_str",
]
