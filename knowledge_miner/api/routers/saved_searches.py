"""
Saved Searches Router

Named library queries a signed-in user can re-run later.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response
from psycopg2.extras import Json
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, require_user
from ..errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/saved-searches", tags=["saved-searches"])


class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    query: str = Field(..., max_length=500)
    filters: Optional[Dict[str, Any]] = None


@router.get("")
def list_saved_searches(caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, user_id, name, query, filters, created_at
                FROM saved_searches
                WHERE user_id = %s
                ORDER BY created_at DESC
                """,
                (caller.user_id,),
            )
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


@router.post("", status_code=201)
def create_saved_search(body: SavedSearchCreate, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO saved_searches (user_id, name, query, filters)
                VALUES (%s, %s, %s, %s)
                RETURNING id, user_id, name, query, filters, created_at
                """,
                (caller.user_id, body.name.strip(), body.query, Json(body.filters or {})),
            )
            saved = dict(cur.fetchone())
        conn.commit()
    finally:
        conn.close()
    return saved


@router.delete("/{search_id}", status_code=204)
def delete_saved_search(search_id: int, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT user_id FROM saved_searches WHERE id = %s", (search_id,))
            row = cur.fetchone()
            if not row:
                raise NotFoundError("Saved search", search_id)
            if row["user_id"] != caller.user_id:
                raise AuthorizationError("You can only delete your own saved searches")
            cur.execute("DELETE FROM saved_searches WHERE id = %s", (search_id,))
        conn.commit()
    finally:
        conn.close()
    return Response(status_code=204)
