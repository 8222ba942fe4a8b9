"""Password hashing (bcrypt) and one-time token helpers."""

import base64
import hashlib
import secrets
import logging
from datetime import datetime, timedelta, timezone

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
RESET_TOKEN_LIFETIME = timedelta(hours=1)


def _bcrypt_input(password: str) -> bytes:
    # bcrypt rejects input over 72 bytes; a base64 SHA-256 digest is always 44
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_bcrypt_input(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check; malformed stored hashes count as a mismatch."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_bcrypt_input(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("[Auth] Stored password hash is not a valid bcrypt hash")
        return False


def generate_token(nbytes: int = 32) -> str:
    """Random hex token for email verification and password resets."""
    return secrets.token_hex(nbytes)


def reset_token_expiry(now: datetime = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + RESET_TOKEN_LIFETIME
