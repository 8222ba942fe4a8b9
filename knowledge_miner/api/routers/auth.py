"""
Authentication Router

Endpoints:
- POST /api/auth/register - Create an account and sign in
- POST /api/auth/login - Username/email + password login
- POST /api/auth/logout - Clear auth cookies
- GET /api/auth/me - Current user (refreshes tokens when needed)
- POST /api/auth/reset-password-request - Issue a password reset token
- POST /api/auth/reset-password - Set a new password with a reset token
- POST /api/auth/verify-email - Confirm an email address
- POST /api/auth/change-password - Change password while signed in

Tokens live only in HttpOnly cookies; they are never returned in bodies.
"""

import logging
from typing import Any, Dict, Optional

import psycopg2
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, require_user
from ..errors import AuthenticationError, ConflictError, ErrorCode, ValidationError
from ..services import passwords
from ..services.auth_tokens import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    clear_auth_cookies,
    decode_and_validate,
    issue_session,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

USER_COLUMNS = "id, username, email, role, is_verified, created_at, last_login"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ============================================
# Request models
# ============================================

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, pattern=r'^[a-zA-Z0-9_]+$')
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: str = Field(..., alias="confirmPassword")


class LoginRequest(BaseModel):
    username_or_email: str = Field(..., min_length=1, alias="usernameOrEmail")
    password: str = Field(..., min_length=1)


class ResetPasswordRequestBody(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordBody(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: str = Field(..., alias="confirmPassword")


class VerifyEmailBody(BaseModel):
    token: str = Field(..., min_length=1)


class ChangePasswordBody(BaseModel):
    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., min_length=6, max_length=100, alias="newPassword")
    confirm_password: str = Field(..., alias="confirmPassword")


# ============================================
# Database helpers
# ============================================

def _public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "username": row["username"],
        "email": row["email"],
        "role": row.get("role", "user"),
        "is_verified": row.get("is_verified", False),
        "created_at": row.get("created_at"),
        "last_login": row.get("last_login"),
    }


def _get_user_by_id(conn, user_id: int) -> Optional[dict]:
    with conn.cursor() as cur:
        cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = %s", (user_id,))
        row = cur.fetchone()
    return dict(row) if row else None


def _get_user_for_login(conn, username_or_email: str) -> Optional[dict]:
    column = "LOWER(email)" if "@" in username_or_email else "username"
    value = username_or_email.lower() if "@" in username_or_email else username_or_email
    with conn.cursor() as cur:
        cur.execute(
            f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE {column} = %s",
            (value,),
        )
        row = cur.fetchone()
    return dict(row) if row else None


def _passwords_match(password: str, confirm: str) -> None:
    if password != confirm:
        raise ValidationError("Passwords don't match", details={"fields": {"confirmPassword": "Passwords don't match"}})


# ============================================
# Endpoints
# ============================================

@router.post("/register", status_code=201)
def register(body: RegisterRequest, response: Response):
    _passwords_match(body.password, body.confirm_password)

    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT username, LOWER(email) AS email FROM users WHERE username = %s OR LOWER(email) = %s",
                (body.username, body.email.lower()),
            )
            existing = cur.fetchone()
            if existing:
                field = "username" if existing["username"] == body.username else "email"
                raise ConflictError(f"A user with this {field} already exists", details={"field": field})

            cur.execute(
                f"""
                INSERT INTO users (username, email, password_hash, verification_token)
                VALUES (%s, %s, %s, %s)
                RETURNING {USER_COLUMNS}
                """,
                (
                    body.username,
                    body.email.lower(),
                    passwords.hash_password(body.password),
                    passwords.generate_token(),
                ),
            )
            user = dict(cur.fetchone())
        conn.commit()
    except psycopg2.IntegrityError:
        conn.rollback()
        raise ConflictError("A user with this username or email already exists")
    finally:
        conn.close()

    issue_session(response, user)
    logger.info(f"[Auth] Registered user_id={user['id']}")
    return {"success": True, "user": _public_user(user)}


@router.post("/login")
def login(body: LoginRequest, response: Response):
    conn = get_db_connection()
    try:
        user = _get_user_for_login(conn, body.username_or_email.strip())
        if not user or not passwords.verify_password(body.password, user.get("password_hash") or ""):
            logger.warning("[Auth] Invalid login attempt")
            raise AuthenticationError("Invalid username or password", code=ErrorCode.INVALID_CREDENTIALS)

        with conn.cursor() as cur:
            cur.execute("UPDATE users SET last_login = NOW() WHERE id = %s", (user["id"],))
        conn.commit()
    finally:
        conn.close()

    issue_session(response, user)
    logger.info(f"[Auth] Login successful for user_id={user['id']}")
    return {"success": True, "user": _public_user(user)}


@router.post("/logout")
def logout(response: Response):
    """Idempotent: succeeds whether or not anyone was signed in."""
    clear_auth_cookies(response)
    logger.info("[Auth] User logged out")
    return {"success": True, "message": "Logged out"}


@router.get("/me")
def get_current_user(request: Request, response: Response):
    """
    Current user.

    1. Valid access token -> user
    2. Expired access but valid refresh token -> re-mint both, user
    3. Otherwise -> 401 {authenticated: false}
    """
    user_id = None
    needs_refresh = False

    payload = decode_and_validate(request.cookies.get(ACCESS_COOKIE), "access")
    if payload:
        user_id = int(payload["sub"])
    else:
        payload = decode_and_validate(request.cookies.get(REFRESH_COOKIE), "refresh")
        if payload:
            user_id = int(payload["sub"])
            needs_refresh = True

    if not user_id:
        return JSONResponse(status_code=401, content={"detail": "not_authenticated", "authenticated": False})

    conn = get_db_connection()
    try:
        user = _get_user_by_id(conn, user_id)
    finally:
        conn.close()

    if not user:
        logger.warning(f"[Auth /me] User not found in database: user_id={user_id}")
        unauthenticated = JSONResponse(status_code=401, content={"detail": "user_not_found", "authenticated": False})
        clear_auth_cookies(unauthenticated)
        return unauthenticated

    if needs_refresh:
        issue_session(response, user)
        logger.info(f"[Auth /me] Refreshed tokens for user_id={user_id}")

    return {"authenticated": True, "user": _public_user(user)}


@router.post("/reset-password-request")
def reset_password_request(body: ResetPasswordRequestBody):
    """Always reports success so the endpoint cannot be used to probe accounts."""
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE users SET reset_token = %s, reset_token_expires = %s
                WHERE LOWER(email) = %s
                RETURNING id
                """,
                (passwords.generate_token(), passwords.reset_token_expiry(), body.email.lower()),
            )
            row = cur.fetchone()
        conn.commit()
    finally:
        conn.close()

    if row:
        logger.info(f"[Auth] Password reset requested for user_id={row['id']}")
    return {
        "success": True,
        "message": "If an account exists for that email, a reset link has been sent",
    }


@router.post("/reset-password")
def reset_password(body: ResetPasswordBody):
    _passwords_match(body.password, body.confirm_password)

    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE users
                SET password_hash = %s, reset_token = NULL, reset_token_expires = NULL
                WHERE reset_token = %s AND reset_token_expires > NOW()
                RETURNING id
                """,
                (passwords.hash_password(body.password), body.token),
            )
            row = cur.fetchone()
        conn.commit()
    finally:
        conn.close()

    if not row:
        raise ValidationError("Invalid or expired reset token")

    logger.info(f"[Auth] Password reset for user_id={row['id']}")
    return {"success": True, "message": "Password has been reset"}


@router.post("/verify-email")
def verify_email(body: VerifyEmailBody):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE users SET is_verified = TRUE, verification_token = NULL
                WHERE verification_token = %s
                RETURNING id
                """,
                (body.token,),
            )
            row = cur.fetchone()
        conn.commit()
    finally:
        conn.close()

    if not row:
        raise ValidationError("Invalid verification token")

    logger.info(f"[Auth] Email verified for user_id={row['id']}")
    return {"success": True, "message": "Email verified"}


@router.post("/change-password")
def change_password(body: ChangePasswordBody, caller: Caller = Depends(require_user)):
    _passwords_match(body.new_password, body.confirm_password)
    if body.new_password == body.current_password:
        raise ValidationError("New password must be different from the current password")

    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT password_hash FROM users WHERE id = %s", (caller.user_id,))
            row = cur.fetchone()
            if not row:
                raise HTTPException(status_code=404, detail="User not found")
            if not passwords.verify_password(body.current_password, row["password_hash"]):
                raise AuthenticationError("Current password is incorrect", code=ErrorCode.INVALID_CREDENTIALS)

            cur.execute(
                "UPDATE users SET password_hash = %s WHERE id = %s",
                (passwords.hash_password(body.new_password), caller.user_id),
            )
        conn.commit()
    finally:
        conn.close()

    logger.info(f"[Auth] Password changed for user_id={caller.user_id}")
    return {"success": True, "message": "Password changed"}
