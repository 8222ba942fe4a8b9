"""
Collections Router

User-owned named groups of videos. All endpoints require sign-in; a
collection is only visible to its owner.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, require_user
from ..errors import AuthorizationError, NotFoundError
from ..services import video_store
from .videos import get_owned_video, update_fields

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/collections", tags=["collections"])

COLLECTION_COLUMNS = "id, user_id, name, description, created_at"


class CollectionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class CollectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class AddVideoRequest(BaseModel):
    video_id: int


class BulkAddRequest(BaseModel):
    video_ids: List[int] = Field(..., min_length=1, max_length=500)


def _get_owned_collection(conn, collection_id: int, caller: Caller) -> dict:
    with conn.cursor() as cur:
        cur.execute(f"SELECT {COLLECTION_COLUMNS} FROM collections WHERE id = %s", (collection_id,))
        row = cur.fetchone()
    if not row:
        raise NotFoundError("Collection", collection_id)
    if row["user_id"] != caller.user_id:
        raise AuthorizationError("You don't have permission to access this collection")
    return dict(row)


@router.get("")
def list_collections(caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {', '.join('c.' + col.strip() for col in COLLECTION_COLUMNS.split(','))},
                       COUNT(cv.video_id) AS video_count
                FROM collections c
                LEFT JOIN collection_videos cv ON cv.collection_id = c.id
                WHERE c.user_id = %s
                GROUP BY c.id
                ORDER BY c.created_at DESC
                """,
                (caller.user_id,),
            )
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


@router.post("", status_code=201)
def create_collection(body: CollectionCreate, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO collections (user_id, name, description)
                VALUES (%s, %s, %s)
                RETURNING {COLLECTION_COLUMNS}
                """,
                (caller.user_id, body.name.strip(), body.description),
            )
            collection = dict(cur.fetchone())
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Created collection {collection['id']} for user_id={caller.user_id}")
    return collection


@router.get("/{collection_id}")
def get_collection(collection_id: int, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        return _get_owned_collection(conn, collection_id, caller)
    finally:
        conn.close()


@router.patch("/{collection_id}")
def update_collection(collection_id: int, body: CollectionUpdate, caller: Caller = Depends(require_user)):
    fields = update_fields(body, ("name",))

    conn = get_db_connection()
    try:
        _get_owned_collection(conn, collection_id, caller)
        assignments = ", ".join(f"{name} = %s" for name in fields)
        with conn.cursor() as cur:
            cur.execute(
                f"UPDATE collections SET {assignments} WHERE id = %s RETURNING {COLLECTION_COLUMNS}",
                list(fields.values()) + [collection_id],
            )
            collection = dict(cur.fetchone())
        conn.commit()
    finally:
        conn.close()
    return collection


@router.delete("/{collection_id}", status_code=204)
def delete_collection(collection_id: int, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        _get_owned_collection(conn, collection_id, caller)
        with conn.cursor() as cur:
            cur.execute("DELETE FROM collection_videos WHERE collection_id = %s", (collection_id,))
            cur.execute("DELETE FROM collections WHERE id = %s", (collection_id,))
        conn.commit()
    finally:
        conn.close()
    return Response(status_code=204)


@router.get("/{collection_id}/videos")
def list_collection_videos(collection_id: int, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        _get_owned_collection(conn, collection_id, caller)
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {video_store.VIDEO_COLUMNS}
                FROM videos v
                JOIN collection_videos cv ON cv.video_id = v.id
                WHERE cv.collection_id = %s
                ORDER BY cv.added_at DESC
                """,
                (collection_id,),
            )
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


@router.post("/{collection_id}/videos", status_code=201)
def add_video(collection_id: int, body: AddVideoRequest, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        _get_owned_collection(conn, collection_id, caller)
        get_owned_video(conn, body.video_id, caller)
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO collection_videos (collection_id, video_id)
                VALUES (%s, %s)
                ON CONFLICT DO NOTHING
                """,
                (collection_id, body.video_id),
            )
        conn.commit()
    finally:
        conn.close()
    return {"success": True, "collection_id": collection_id, "video_id": body.video_id}


@router.post("/{collection_id}/videos/bulk")
def bulk_add_videos(collection_id: int, body: BulkAddRequest, caller: Caller = Depends(require_user)):
    """Add several videos; links that already exist are left alone."""
    conn = get_db_connection()
    try:
        _get_owned_collection(conn, collection_id, caller)
        video_ids = list(dict.fromkeys(body.video_ids))
        owned = video_store.find_owned_ids(conn, video_ids, caller.user_id, caller.anonymous_session_id)
        not_owned = [i for i in video_ids if i not in owned]
        if not_owned:
            raise AuthorizationError(
                "You don't have permission to add one or more of these videos",
                details={"video_ids": not_owned},
            )

        added = 0
        with conn.cursor() as cur:
            for video_id in video_ids:
                cur.execute(
                    """
                    INSERT INTO collection_videos (collection_id, video_id)
                    VALUES (%s, %s)
                    ON CONFLICT DO NOTHING
                    """,
                    (collection_id, video_id),
                )
                added += cur.rowcount
        conn.commit()
    finally:
        conn.close()

    return {"added": added}


@router.delete("/{collection_id}/videos/{video_id}", status_code=204)
def remove_video(collection_id: int, video_id: int, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        _get_owned_collection(conn, collection_id, caller)
        with conn.cursor() as cur:
            cur.execute(
                "DELETE FROM collection_videos WHERE collection_id = %s AND video_id = %s",
                (collection_id, video_id),
            )
        conn.commit()
    finally:
        conn.close()
    return Response(status_code=204)
