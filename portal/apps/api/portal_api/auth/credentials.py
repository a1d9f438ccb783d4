"""Password credential primitives.

Salted bcrypt hashing for stored user passwords.

SECURITY:
- Salt: 16 bytes (128 bits) from the OS CSPRNG, hex-encoded, one per credential
- Hash: bcrypt(b64(HMAC-SHA256(salt, password))) at PORTAL_BCRYPT_ROUNDS (default 12)
- The HMAC digest binds every byte of the password and the whole salt; bcrypt
  never sees more than 44 bytes, so its 72-byte window never truncates input
- Verification: bcrypt.checkpw (constant-time)
- Plaintext passwords, salts and hashes are NEVER logged
"""

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Optional

import bcrypt

from portal_api.config.env import get_bcrypt_rounds
from portal_api.errors import HashingError, RandomSourceError

logger = logging.getLogger(__name__)

SALT_BYTES = 16

# bcrypt only consumes the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72


def generate_salt() -> str:
    """Generate a per-credential salt.

    Returns:
        32-character hex string (128 bits of entropy)

    Raises:
        RandomSourceError: If the OS random source is unavailable
    """
    try:
        return secrets.token_hex(SALT_BYTES)
    except (OSError, NotImplementedError) as e:
        logger.error(
            "credentials.salt.rng_unavailable",
            extra={"event": "credentials.salt.rng_unavailable", "error_type": type(e).__name__},
        )
        raise RandomSourceError("Secure random source unavailable") from e


def _material(plaintext: str, salt: str) -> bytes:
    """Build the bcrypt input: base64 of HMAC-SHA256 keyed by the salt over the password."""
    digest = hmac.new(salt.encode("utf-8"), plaintext.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest)


def hash_password(plaintext: str, salt: str, rounds: Optional[int] = None) -> str:
    """Hash a password with its salt.

    Args:
        plaintext: Password as supplied by the user
        salt: Value from generate_salt()
        rounds: bcrypt cost factor (default: PORTAL_BCRYPT_ROUNDS)

    Returns:
        bcrypt hash string ($2b$...)

    Raises:
        HashingError: If bcrypt fails internally
    """
    cost = rounds if rounds is not None else get_bcrypt_rounds()
    try:
        hashed = bcrypt.hashpw(_material(plaintext, salt), bcrypt.gensalt(rounds=cost))
    except (ValueError, TypeError) as e:
        logger.error(
            "credentials.hash.failed",
            extra={"event": "credentials.hash.failed", "error_type": type(e).__name__},
        )
        raise HashingError("Password hashing failed") from e
    return hashed.decode("ascii")


def verify_password(plaintext: str, salt: str, stored_hash: str) -> bool:
    """Check a password against a stored salt + hash.

    Returns:
        True on match, False on mismatch

    Raises:
        HashingError: If stored_hash is not a well-formed bcrypt hash
    """
    try:
        return bcrypt.checkpw(_material(plaintext, salt), stored_hash.encode("ascii"))
    except (ValueError, TypeError) as e:
        logger.error(
            "credentials.verify.malformed_hash",
            extra={"event": "credentials.verify.malformed_hash", "error_type": type(e).__name__},
        )
        raise HashingError("Stored password hash is malformed") from e
