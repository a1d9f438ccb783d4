"""PII / secret / stack-trace sanitizer for log output.

Three-tier string processing:
 1. > MAX_STR_LOG   → truncate + sha256, never run regex
 2. > MAX_STR_FOR_REGEX → prefix check only (Bearer/Basic)
 3. ≤ MAX_STR_FOR_REGEX → full regex replacement

Patterns are anchored to non-whitespace (\\S+) and pre-compiled at import;
the size gate keeps regex work bounded.
"""

import hashlib
import re
import traceback
from typing import Any

# ── Size thresholds ───────────────────────────────────────────────────────────
MAX_STR_LOG: int = 2048
MAX_STR_FOR_REGEX: int = 512
MAX_DEPTH: int = 6

REDACTED = "[REDACTED]"

# ── Sensitive dict keys (lower-cased for comparison) ─────────────────────────
_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "authorization", "token", "token_value", "value",
    "password", "old_password", "new_password", "password_hash", "salt",
    "credential", "secret", "email", "mobile_number", "phone",
})

# ── Pre-compiled regex patterns ───────────────────────────────────────────────
_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"Bearer \S+"),
    re.compile(r"Basic \S+"),
    re.compile(r"token=\S+"),
    re.compile(r"password=\S+"),
    re.compile(r"\$2[abxy]\$\d{2}\$[./A-Za-z0-9]{53}"),  # bcrypt hash
]

_BEARER_PREFIX = "Bearer "
_BASIC_PREFIX = "Basic "


def sanitize_str(s: str) -> str:
    """Sanitize a string value according to the three-tier size gate.

    Returns a redacted / truncated string; never the original sensitive value.
    """
    if not isinstance(s, str):
        return s  # type: ignore[return-value]

    n = len(s)

    if n > MAX_STR_LOG:
        digest = hashlib.sha256(s.encode("utf-8", errors="replace")).hexdigest()[:16]
        return f"[TRUNCATED len={n} sha256={digest}]"

    if n > MAX_STR_FOR_REGEX:
        if s.startswith(_BEARER_PREFIX) or s.startswith(_BASIC_PREFIX):
            return REDACTED
        return s

    result = s
    for pattern in _PATTERNS:
        result = pattern.sub(REDACTED, result)
    return result


def sanitize_obj(obj: Any, depth: int = 0) -> Any:
    """Recursively sanitize a log extra value.

    - dict: redact sensitive keys, recurse others
    - list/tuple: recurse each element
    - str: run sanitize_str()
    - other: return as-is
    """
    if depth >= MAX_DEPTH:
        return "[DEPTH_LIMIT]"

    if isinstance(obj, dict):
        result: dict[str, Any] = {}
        for key, value in obj.items():
            if isinstance(key, str) and key.lower() in _SENSITIVE_KEYS:
                result[key] = REDACTED
            else:
                result[key] = sanitize_obj(value, depth + 1)
        return result

    if isinstance(obj, (list, tuple)):
        return [sanitize_obj(item, depth + 1) for item in obj]

    if isinstance(obj, str):
        return sanitize_str(obj)

    return obj


def sanitize_exc(exc_info: tuple) -> str:
    """Format an exc_info tuple into a sanitized traceback string.

    Uses capture_locals=False so local variable values (passwords, salts)
    stay out of the log output.
    """
    _type, value, _tb = exc_info
    if value is None:
        return ""
    try:
        te = traceback.TracebackException.from_exception(value, capture_locals=False)
        formatted = "".join(te.format())
        return sanitize_str(formatted)
    except Exception:
        return "[TRACEBACK_FORMAT_ERROR]"
