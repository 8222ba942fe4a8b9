"""Mask credentials in database URLs before they reach the logs."""

import os
import re
from typing import Optional
from urllib.parse import urlparse, urlunparse

_PASSWORD_PATTERN = re.compile(r'(://[^:/@]+:)([^@]+)(@)')


def mask_dsn_password(dsn: Optional[str], mask: str = "****") -> str:
    """
    Replace the password in a URL-style DSN.

    >>> mask_dsn_password("postgresql://miner:secret@db:5432/library")
    'postgresql://miner:****@db:5432/library'
    >>> mask_dsn_password(None)
    ''
    """
    if not dsn:
        return ""

    try:
        parsed = urlparse(dsn)
        if not parsed.password:
            return dsn

        host = parsed.hostname or ""
        if parsed.port:
            host = f"{host}:{parsed.port}"
        netloc = f"{parsed.username}:{mask}@{host}"
        return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        # urlparse rejects some malformed ports; fall back to a plain substitution
        return _PASSWORD_PATTERN.sub(rf'\1{mask}\3', dsn)


def describe_database_url(env_var_name: str = "DATABASE_URL") -> str:
    """Masked value of the DSN env var, or "not set"."""
    dsn = os.getenv(env_var_name, "")
    if not dsn:
        return "not set"
    return mask_dsn_password(dsn)
