"""
JWT session tokens carried in HttpOnly cookies.

- HS256 only
- access token (8h) + refresh token (30d), distinguished by a "type" claim
- tokens never appear in response bodies, logs or URLs

Environment variables:
- AUTH_SESSION_SECRET: signing secret (required in production)
"""

import os
import time
import logging
from typing import Optional, Dict, Any

import jwt

logger = logging.getLogger(__name__)

ACCESS_TOKEN_LIFETIME_SECONDS = 8 * 60 * 60
REFRESH_TOKEN_LIFETIME_SECONDS = 30 * 24 * 60 * 60

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
COOKIE_PATH = "/"
COOKIE_SAMESITE = "lax"

JWT_ALGORITHM = "HS256"

_DEV_SECRET = "dev-only-knowledge-miner-secret-not-for-production"

# Claims safe to embed; never anything secret
_SAFE_CLAIMS = ("username", "role")


def _is_production() -> bool:
    """
    Detect a production deployment (controls the Secure cookie flag and
    whether the dev secret may be used).
    """
    if os.getenv("PYTHON_ENV") == "production" or os.getenv("NODE_ENV") == "production":
        return True
    if os.getenv("RENDER") == "true":
        return True
    if os.getenv("RAILWAY_ENVIRONMENT") == "production":
        return True
    if os.getenv("FLY_APP_NAME") or os.getenv("HEROKU_APP_NAME"):
        return True
    return os.getenv("FRONTEND_URL", "").startswith("https://")


def _get_secret() -> str:
    secret = os.getenv("AUTH_SESSION_SECRET", "")
    if secret:
        return secret

    if _is_production():
        raise ValueError("AUTH_SESSION_SECRET must be set in production")

    logger.warning("[Auth] Using dev-only secret. Set AUTH_SESSION_SECRET in production.")
    return _DEV_SECRET


def _create_token(user_id: int, token_type: str, lifetime: int, extra: Optional[Dict[str, Any]]) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
    }
    if extra:
        for key in _SAFE_CLAIMS:
            if key in extra:
                payload[key] = extra[key]

    token = jwt.encode(payload, _get_secret(), algorithm=JWT_ALGORITHM)
    logger.debug(f"[Auth] Created {token_type} token for user_id={user_id}")
    return token


def create_access_token(user_id: int, extra: Optional[Dict[str, Any]] = None) -> str:
    return _create_token(user_id, "access", ACCESS_TOKEN_LIFETIME_SECONDS, extra)


def create_refresh_token(user_id: int, extra: Optional[Dict[str, Any]] = None) -> str:
    return _create_token(user_id, "refresh", REFRESH_TOKEN_LIFETIME_SECONDS, extra)


def decode_and_validate(token: Optional[str], expected_type: str) -> Optional[Dict[str, Any]]:
    """
    Decode a token and check its signature, expiry and type claim.

    Returns the payload, or None for any invalid/expired/mismatched token.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(
            token,
            _get_secret(),
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("[Auth] Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"[Auth] Invalid token: {type(e).__name__}")
        return None

    if payload.get("type") != expected_type:
        logger.warning(f"[Auth] Token type mismatch: expected={expected_type}, got={payload.get('type')}")
        return None

    return payload


def issue_session(response, user: Dict[str, Any]) -> None:
    """Mint both tokens for ``user`` and attach them as cookies."""
    extra = {"username": user.get("username"), "role": user.get("role")}
    set_auth_cookies(
        response,
        create_access_token(user["id"], extra),
        create_refresh_token(user["id"], extra),
    )


def set_auth_cookies(response, access_token: str, refresh_token: str) -> None:
    secure = _is_production()
    response.set_cookie(
        key=ACCESS_COOKIE,
        value=access_token,
        max_age=ACCESS_TOKEN_LIFETIME_SECONDS,
        httponly=True,
        secure=secure,
        samesite=COOKIE_SAMESITE,
        path=COOKIE_PATH,
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        max_age=REFRESH_TOKEN_LIFETIME_SECONDS,
        httponly=True,
        secure=secure,
        samesite=COOKIE_SAMESITE,
        path=COOKIE_PATH,
    )


def clear_auth_cookies(response) -> None:
    secure = _is_production()
    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.set_cookie(
            key=key,
            value="",
            max_age=0,
            httponly=True,
            secure=secure,
            samesite=COOKIE_SAMESITE,
            path=COOKIE_PATH,
        )
    logger.debug("[Auth] Cleared auth cookies")
