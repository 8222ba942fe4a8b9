"""
Request identity.

A request is made either by a registered user (valid ``access_token``
cookie) or by a guest identified by the ``X-Anonymous-Session`` header.
Routers depend on ``get_caller`` / ``require_user`` / ``require_session``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from .errors import AuthenticationError
from .services.anonymous_sessions import is_anonymous_session_id
from .services.auth_tokens import ACCESS_COOKIE, decode_and_validate
from .utils.request_id import ANONYMOUS_SESSION_HEADER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Caller:
    user_id: Optional[int] = None
    anonymous_session_id: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None and self.anonymous_session_id is not None

    @property
    def user_type(self) -> str:
        return "registered" if self.is_authenticated else "anonymous"

    def owns(self, record: Dict[str, Any]) -> bool:
        """True if ``record`` (a row with user_id / anonymous_session_id) belongs to the caller."""
        if self.user_id is not None and record.get("user_id") == self.user_id:
            return True
        if (
            self.anonymous_session_id is not None
            and record.get("anonymous_session_id") == self.anonymous_session_id
        ):
            return True
        return False


def get_caller(request: Request) -> Caller:
    session_header = request.headers.get(ANONYMOUS_SESSION_HEADER) or None
    if session_header and not is_anonymous_session_id(session_header):
        logger.debug(f"[Anonymous] Ignoring malformed session header: {session_header[:20]}")
        session_header = None

    payload = decode_and_validate(request.cookies.get(ACCESS_COOKIE), "access")
    if payload:
        return Caller(
            user_id=int(payload["sub"]),
            anonymous_session_id=session_header,
            username=payload.get("username"),
        )

    return Caller(anonymous_session_id=session_header)


def require_user(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_authenticated:
        raise AuthenticationError("Authentication required")
    return caller


def require_session(caller: Caller = Depends(get_caller)) -> Caller:
    """A signed-in user or a guest with a session header."""
    if not caller.is_authenticated and not caller.anonymous_session_id:
        raise AuthenticationError(
            "Sign in or start a guest session to continue",
        )
    return caller
