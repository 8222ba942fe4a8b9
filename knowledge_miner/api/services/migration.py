"""
Guest-to-account migration.

When a guest signs up or logs in, the videos saved under their anonymous
session are reassigned to the account in a single transaction. The
operation is idempotent: once moved, the session holds no videos and a
repeat call reports zero migrated.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psycopg2

from . import anonymous_sessions

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    success: bool
    migrated_videos: int = 0
    error: Optional[str] = None
    session_found: bool = True

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "migratedVideos": self.migrated_videos}
        if self.error:
            body["error"] = self.error
        elif self.success:
            body["message"] = f"Migrated {self.migrated_videos} video(s) to your account"
        return body


def migrate_anonymous_session(conn, session_id: str, user_id: int) -> MigrationResult:
    """
    Move every video of ``session_id`` to ``user_id``.

    Returns a MigrationResult; ``session_found`` is False when the session
    does not exist. Database errors roll back and are reported in the result.
    """
    session = anonymous_sessions.get_session(conn, session_id)
    if not session:
        logger.warning(f"[Migration] Session not found: {session_id[:24]}")
        return MigrationResult(success=False, error="Anonymous session not found", session_found=False)

    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE videos
                SET user_id = %s, user_type = 'registered', anonymous_session_id = NULL
                WHERE anonymous_session_id = %s
                RETURNING id
                """,
                (user_id, session_id),
            )
            video_ids = [row["id"] for row in cur.fetchall()]

            if video_ids:
                cur.execute(
                    "UPDATE embeddings SET user_id = %s WHERE video_id = ANY(%s)",
                    (user_id, video_ids),
                )

            cur.execute(
                """
                UPDATE qa_conversations
                SET user_id = %s, anonymous_session_id = NULL
                WHERE anonymous_session_id = %s
                """,
                (user_id, session_id),
            )

            cur.execute(
                """
                UPDATE anonymous_sessions
                SET video_count = 0, last_active_at = NOW()
                WHERE session_id = %s
                """,
                (session_id,),
            )
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        logger.error(f"[Migration] Failed for session {session_id[:24]} -> user {user_id}: {e}")
        return MigrationResult(success=False, error="Failed to migrate videos")

    if video_ids:
        logger.info(f"[Migration] Moved {len(video_ids)} videos from {session_id[:24]} to user {user_id}")
    else:
        logger.info(f"[Migration] Session {session_id[:24]} had no videos to migrate")

    return MigrationResult(success=True, migrated_videos=len(video_ids))
