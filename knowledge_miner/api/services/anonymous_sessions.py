"""
Anonymous (guest) sessions.

Guests are identified by a client-held id of the form
``anon_{epoch_ms}_{24 hex chars}``. The server keeps one row per id in
``anonymous_sessions`` with a counter of saved videos, which caps how many
videos a guest may keep before signing up.
"""

import os
import time
import secrets
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ANONYMOUS_SESSION_PREFIX = "anon_"
ANONYMOUS_VIDEO_LIMIT = int(os.getenv("ANONYMOUS_VIDEO_LIMIT", "3"))
ANONYMOUS_SESSION_MAX_AGE_DAYS = int(os.getenv("ANONYMOUS_SESSION_MAX_AGE_DAYS", "90"))

LIMIT_REACHED_MESSAGE = (
    f"Anonymous users can only save up to {ANONYMOUS_VIDEO_LIMIT} videos. "
    "Please sign in to save more."
)
LIMIT_REACHED_SUGGESTION = (
    "To save additional videos, you'll need to create an account. This allows you "
    "to access all your videos from any device and unlock more features."
)


def generate_session_id() -> str:
    return f"{ANONYMOUS_SESSION_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(12)}"


def is_anonymous_session_id(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(ANONYMOUS_SESSION_PREFIX) and len(value) <= 100


def can_add_video(session: Optional[Dict[str, Any]]) -> bool:
    if not session:
        return True
    return (session.get("video_count") or 0) < ANONYMOUS_VIDEO_LIMIT


def get_session(conn, session_id: str) -> Optional[Dict[str, Any]]:
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT id, session_id, created_at, last_active_at, video_count,
                   user_agent, ip_address
            FROM anonymous_sessions
            WHERE session_id = %s
            """,
            (session_id,),
        )
        row = cur.fetchone()
    return dict(row) if row else None


def get_or_create_session(
    conn,
    session_id: str,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Dict[str, Any]:
    """Create the session row on first sight; otherwise refresh last_active_at."""
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO anonymous_sessions (session_id, user_agent, ip_address)
            VALUES (%s, %s, %s)
            ON CONFLICT (session_id) DO UPDATE SET last_active_at = NOW()
            RETURNING id, session_id, created_at, last_active_at, video_count,
                      user_agent, ip_address, (xmax = 0) AS created
            """,
            (session_id, (user_agent or "")[:500] or None, ip_address),
        )
        row = dict(cur.fetchone())
    conn.commit()

    if row.pop("created", False):
        logger.info(f"[Anonymous] New guest session {session_id[:24]}")
    return row


def claim_video_slot(conn, session_id: str) -> Optional[int]:
    """
    Take one of the session's video slots, returning the new count, or None
    when the session is already at the limit. Does not commit: the caller
    commits together with the video insert, and the row lock held until then
    serialises concurrent saves from the same guest.
    """
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE anonymous_sessions
            SET video_count = video_count + 1, last_active_at = NOW()
            WHERE session_id = %s AND video_count < %s
            RETURNING video_count
            """,
            (session_id, ANONYMOUS_VIDEO_LIMIT),
        )
        row = cur.fetchone()
    return row["video_count"] if row else None


def decrement_video_count(conn, session_id: str, amount: int = 1) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE anonymous_sessions
            SET video_count = GREATEST(video_count - %s, 0), last_active_at = NOW()
            WHERE session_id = %s
            """,
            (amount, session_id),
        )
    conn.commit()


def count_session_videos(conn, session_id: str) -> int:
    with conn.cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) AS count FROM videos WHERE anonymous_session_id = %s",
            (session_id,),
        )
        row = cur.fetchone()
    return int(row["count"]) if row else 0


def sync_video_count(conn, session: Dict[str, Any]) -> int:
    """
    Return the real number of videos held by ``session``, correcting the
    stored counter when it has drifted (e.g. after deletes).
    """
    actual = count_session_videos(conn, session["session_id"])
    stored = session.get("video_count") or 0
    if actual != stored:
        logger.warning(
            f"[Anonymous] Counter mismatch for {session['session_id'][:24]}: "
            f"stored={stored}, actual={actual}; correcting"
        )
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE anonymous_sessions SET video_count = %s WHERE session_id = %s",
                (actual, session["session_id"]),
            )
        conn.commit()
    return actual


def cleanup_expired_sessions(conn, max_age_days: int = ANONYMOUS_SESSION_MAX_AGE_DAYS) -> int:
    """
    Delete guest sessions idle for more than ``max_age_days`` along with the
    videos and embeddings they still own. Returns the number of sessions removed.
    """
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT session_id FROM anonymous_sessions
                WHERE last_active_at < NOW() - make_interval(days => %s)
                """,
                (max_age_days,),
            )
            expired = [row["session_id"] for row in cur.fetchall()]
            if not expired:
                return 0

            cur.execute(
                """
                DELETE FROM embeddings WHERE video_id IN (
                    SELECT id FROM videos WHERE anonymous_session_id = ANY(%s)
                )
                """,
                (expired,),
            )
            cur.execute(
                "DELETE FROM videos WHERE anonymous_session_id = ANY(%s) AND user_id IS NULL",
                (expired,),
            )
            cur.execute(
                "DELETE FROM anonymous_sessions WHERE session_id = ANY(%s)",
                (expired,),
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    logger.info(f"[Anonymous] Removed {len(expired)} sessions idle > {max_age_days} days")
    return len(expired)
