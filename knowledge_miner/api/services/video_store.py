"""
Video library persistence.

Hand-written SQL over the ``videos`` table. Every query that lists
videos is scoped to an owner: a registered user id or an anonymous
session id.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

VIDEO_COLUMNS = """
    v.id, v.youtube_id, v.title, v.channel, v.duration, v.publish_date,
    v.thumbnail, v.transcript, v.summary, v.views, v.likes, v.tags,
    v.description, v.user_id, v.anonymous_session_id, v.user_type, v.notes,
    v.category_id, v.rating, v.is_favorite, v.timestamps, v.created_at
"""

INSERTABLE_FIELDS = (
    "youtube_id", "title", "channel", "duration", "publish_date", "thumbnail",
    "transcript", "summary", "views", "likes", "tags", "description",
    "user_id", "anonymous_session_id", "user_type", "notes", "category_id",
    "rating", "is_favorite", "timestamps",
)
UPDATABLE_FIELDS = (
    "title", "notes", "category_id", "rating", "is_favorite", "tags", "timestamps",
)

SORT_COLUMNS = {
    "title": "v.title",
    "date": "v.created_at",
    "rating": "v.rating",
}


@dataclass
class LibraryQuery:
    query: Optional[str] = None
    category_id: Optional[int] = None
    collection_id: Optional[int] = None
    rating_min: Optional[int] = None
    rating_max: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    is_favorite: Optional[bool] = None
    sort_by: str = "date"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 20


def _owner_clause(user_id: Optional[int], anonymous_session_id: Optional[str]) -> Tuple[str, List[Any]]:
    if user_id is not None:
        return "v.user_id = %s", [user_id]
    if anonymous_session_id:
        return "v.anonymous_session_id = %s", [anonymous_session_id]
    return "FALSE", []


def build_library_filters(
    user_id: Optional[int],
    anonymous_session_id: Optional[str],
    params: LibraryQuery,
) -> Tuple[str, List[Any]]:
    """WHERE clause (without the keyword) and bind values for a library query."""
    owner_sql, values = _owner_clause(user_id, anonymous_session_id)
    conditions = [owner_sql]

    if params.query:
        pattern = f"%{params.query}%"
        conditions.append("(v.title ILIKE %s OR v.description ILIKE %s OR v.transcript ILIKE %s)")
        values.extend([pattern, pattern, pattern])
    if params.category_id is not None:
        conditions.append("v.category_id = %s")
        values.append(params.category_id)
    if params.collection_id is not None:
        conditions.append(
            "v.id IN (SELECT video_id FROM collection_videos WHERE collection_id = %s)"
        )
        values.append(params.collection_id)
    if params.rating_min is not None:
        conditions.append("v.rating >= %s")
        values.append(params.rating_min)
    if params.rating_max is not None:
        conditions.append("v.rating <= %s")
        values.append(params.rating_max)
    if params.date_from is not None:
        conditions.append("v.created_at >= %s")
        values.append(params.date_from)
    if params.date_to is not None:
        conditions.append("v.created_at < %s::date + 1")
        values.append(params.date_to)
    if params.is_favorite is not None:
        conditions.append("v.is_favorite = %s")
        values.append(params.is_favorite)

    return " AND ".join(conditions), values


def _order_clause(params: LibraryQuery) -> str:
    column = SORT_COLUMNS.get(params.sort_by, SORT_COLUMNS["date"])
    direction = "ASC" if params.sort_order == "asc" else "DESC"
    return f"{column} {direction} NULLS LAST, v.id {direction}"


def search_videos(
    conn,
    user_id: Optional[int],
    anonymous_session_id: Optional[str],
    params: LibraryQuery,
) -> Dict[str, Any]:
    """One page of the caller's library: ``{videos, totalCount, hasMore}``."""
    where_sql, values = build_library_filters(user_id, anonymous_session_id, params)
    offset = (params.page - 1) * params.limit

    with conn.cursor() as cur:
        cur.execute(f"SELECT COUNT(*) AS count FROM videos v WHERE {where_sql}", values)
        total = int(cur.fetchone()["count"])

        cur.execute(
            f"""
            SELECT {VIDEO_COLUMNS}
            FROM videos v
            WHERE {where_sql}
            ORDER BY {_order_clause(params)}
            LIMIT %s OFFSET %s
            """,
            values + [params.limit, offset],
        )
        videos = [dict(row) for row in cur.fetchall()]

    return {
        "videos": videos,
        "totalCount": total,
        "hasMore": offset + len(videos) < total,
    }


def get_video(conn, video_id: int) -> Optional[Dict[str, Any]]:
    with conn.cursor() as cur:
        cur.execute(f"SELECT {VIDEO_COLUMNS} FROM videos v WHERE v.id = %s", (video_id,))
        row = cur.fetchone()
    return dict(row) if row else None


def get_videos(conn, video_ids: Iterable[int]) -> List[Dict[str, Any]]:
    """Videos in the order of ``video_ids``; unknown ids are skipped."""
    ids = list(video_ids)
    if not ids:
        return []
    with conn.cursor() as cur:
        cur.execute(f"SELECT {VIDEO_COLUMNS} FROM videos v WHERE v.id = ANY(%s)", (ids,))
        by_id = {row["id"]: dict(row) for row in cur.fetchall()}
    return [by_id[i] for i in ids if i in by_id]


def insert_video(conn, fields: Dict[str, Any], commit: bool = True) -> Dict[str, Any]:
    columns = [name for name in INSERTABLE_FIELDS if name in fields]
    placeholders = ", ".join(["%s"] * len(columns))
    with conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO videos AS v ({', '.join(columns)})
            VALUES ({placeholders})
            RETURNING {VIDEO_COLUMNS}
            """,
            [fields[name] for name in columns],
        )
        row = dict(cur.fetchone())
    if commit:
        conn.commit()
    logger.info(f"Saved video {row['id']} ({row['youtube_id']}) as {row.get('user_type')}")
    return row


def _update_assignments(fields: Dict[str, Any]) -> Tuple[str, List[Any]]:
    names = [name for name in UPDATABLE_FIELDS if name in fields]
    if not names:
        raise ValueError("No updatable fields supplied")
    return ", ".join(f"{name} = %s" for name in names), [fields[name] for name in names]


def update_video(conn, video_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    assignments, values = _update_assignments(fields)
    with conn.cursor() as cur:
        cur.execute(
            f"UPDATE videos AS v SET {assignments} WHERE v.id = %s RETURNING {VIDEO_COLUMNS}",
            values + [video_id],
        )
        row = cur.fetchone()
    conn.commit()
    return dict(row) if row else None


def bulk_update_videos(conn, video_ids: List[int], fields: Dict[str, Any]) -> int:
    assignments, values = _update_assignments(fields)
    with conn.cursor() as cur:
        cur.execute(f"UPDATE videos SET {assignments} WHERE id = ANY(%s)", values + [video_ids])
        updated = cur.rowcount
    conn.commit()
    return updated


def delete_videos(conn, video_ids: List[int]) -> int:
    """Delete videos together with their embeddings and Q&A conversations."""
    with conn.cursor() as cur:
        cur.execute("DELETE FROM embeddings WHERE video_id = ANY(%s)", (video_ids,))
        cur.execute("DELETE FROM qa_conversations WHERE video_id = ANY(%s)", (video_ids,))
        cur.execute("DELETE FROM videos WHERE id = ANY(%s)", (video_ids,))
        deleted = cur.rowcount
    conn.commit()
    return deleted


def find_owned_ids(
    conn,
    video_ids: List[int],
    user_id: Optional[int],
    anonymous_session_id: Optional[str],
) -> Set[int]:
    """Subset of ``video_ids`` that belong to the caller."""
    owners = []
    values: List[Any] = [video_ids]
    if user_id is not None:
        owners.append("user_id = %s")
        values.append(user_id)
    if anonymous_session_id:
        owners.append("anonymous_session_id = %s")
        values.append(anonymous_session_id)
    if not owners:
        return set()

    with conn.cursor() as cur:
        cur.execute(
            f"SELECT id FROM videos WHERE id = ANY(%s) AND ({' OR '.join(owners)})",
            values,
        )
        return {row["id"] for row in cur.fetchall()}
