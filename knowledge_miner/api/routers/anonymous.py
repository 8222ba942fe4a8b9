"""
Anonymous Session Router

- GET /api/anonymous/session - Issue a new guest session id
- GET /api/anonymous/videos/count - Saved-video count for the guest session
- POST /api/anonymous/migrate - Move a guest session's videos to the signed-in user
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, require_user
from ..services import anonymous_sessions
from ..services.migration import migrate_anonymous_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/anonymous", tags=["anonymous"])


class MigrateRequest(BaseModel):
    session_id: Optional[str] = Field(None, alias="sessionId", max_length=100)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.get("/session")
def create_session(request: Request):
    session_id = anonymous_sessions.generate_session_id()

    conn = get_db_connection()
    try:
        anonymous_sessions.get_or_create_session(
            conn, session_id, request.headers.get("User-Agent"), _client_ip(request)
        )
    finally:
        conn.close()

    return {"session_id": session_id, "max_allowed": anonymous_sessions.ANONYMOUS_VIDEO_LIMIT}


@router.get("/videos/count")
def get_video_count(
    request: Request,
    x_anonymous_session: Optional[str] = Header(None),
):
    """
    Number of videos held by the guest session. The stored counter is
    corrected if it has drifted from the real count.
    """
    max_allowed = anonymous_sessions.ANONYMOUS_VIDEO_LIMIT
    if not anonymous_sessions.is_anonymous_session_id(x_anonymous_session):
        return {"count": 0, "max_allowed": max_allowed}

    conn = get_db_connection()
    try:
        session = anonymous_sessions.get_or_create_session(
            conn, x_anonymous_session, request.headers.get("User-Agent"), _client_ip(request)
        )
        count = anonymous_sessions.sync_video_count(conn, session)
    finally:
        conn.close()

    return {"count": count, "session_id": x_anonymous_session, "max_allowed": max_allowed}


@router.post("/migrate")
def migrate(
    body: Optional[MigrateRequest] = None,
    caller: Caller = Depends(require_user),
    x_anonymous_session: Optional[str] = Header(None),
):
    """
    Reassign every video from the guest session to the current user.
    Safe to call repeatedly; later calls report 0 migrated.
    """
    session_id = (body.session_id if body else None) or x_anonymous_session
    if not session_id:
        raise HTTPException(status_code=400, detail="No anonymous session ID provided")

    logger.info(f"[Anonymous] Migrating session {session_id[:24]} to user_id={caller.user_id}")

    conn = get_db_connection()
    try:
        result = migrate_anonymous_session(conn, session_id, caller.user_id)
    finally:
        conn.close()

    if not result.session_found:
        return JSONResponse(status_code=404, content=result.to_dict())
    if not result.success:
        return JSONResponse(status_code=500, content=result.to_dict())
    return result.to_dict()
