"""
Categories Router

Global categories are shared by everyone and seeded by migration; users
may add their own. Deleting a category leaves its videos uncategorized.
"""

import logging
from typing import List

import psycopg2
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, get_caller, require_user
from ..errors import AuthorizationError, ConflictError, NotFoundError
from ..utils.cache import TTLCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/categories", tags=["categories"])

_global_categories = TTLCache(ttl_seconds=60.0)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


def _load_global_categories(conn) -> List[dict]:
    with conn.cursor() as cur:
        cur.execute(
            "SELECT id, name, user_id, is_global, created_at FROM categories WHERE is_global ORDER BY name"
        )
        return [dict(row) for row in cur.fetchall()]


def _get_category(conn, category_id: int) -> dict:
    with conn.cursor() as cur:
        cur.execute(
            "SELECT id, name, user_id, is_global, created_at FROM categories WHERE id = %s",
            (category_id,),
        )
        row = cur.fetchone()
    if not row:
        raise NotFoundError("Category", category_id)
    return dict(row)


def _get_editable_category(conn, category_id: int, caller: Caller) -> dict:
    category = _get_category(conn, category_id)
    if category["is_global"] or category["user_id"] != caller.user_id:
        raise AuthorizationError("You can only modify your own categories")
    return category


@router.get("")
def list_categories(caller: Caller = Depends(get_caller)):
    conn = get_db_connection()
    try:
        categories = list(_global_categories.get_or_compute("global", lambda: _load_global_categories(conn)))
        if caller.is_authenticated:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, name, user_id, is_global, created_at
                    FROM categories WHERE user_id = %s AND NOT is_global
                    ORDER BY name
                    """,
                    (caller.user_id,),
                )
                categories.extend(dict(row) for row in cur.fetchall())
    finally:
        conn.close()
    return categories


@router.get("/{category_id}")
def get_category(category_id: int, caller: Caller = Depends(get_caller)):
    conn = get_db_connection()
    try:
        category = _get_category(conn, category_id)
    finally:
        conn.close()

    if not category["is_global"] and category["user_id"] != caller.user_id:
        raise NotFoundError("Category", category_id)
    return category


@router.post("", status_code=201)
def create_category(body: CategoryCreate, caller: Caller = Depends(require_user)):
    name = body.name.strip()
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT 1 FROM categories
                WHERE LOWER(name) = LOWER(%s) AND (is_global OR user_id = %s)
                """,
                (name, caller.user_id),
            )
            if cur.fetchone():
                raise ConflictError(f"Category '{name}' already exists")

            cur.execute(
                """
                INSERT INTO categories (name, user_id, is_global)
                VALUES (%s, %s, FALSE)
                RETURNING id, name, user_id, is_global, created_at
                """,
                (name, caller.user_id),
            )
            category = dict(cur.fetchone())
        conn.commit()
    except psycopg2.IntegrityError:
        conn.rollback()
        raise ConflictError(f"Category '{name}' already exists")
    finally:
        conn.close()

    logger.info(f"Created category {category['id']} for user_id={caller.user_id}")
    return category


@router.patch("/{category_id}")
def rename_category(category_id: int, body: CategoryCreate, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        _get_editable_category(conn, category_id, caller)
        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE categories SET name = %s WHERE id = %s
                RETURNING id, name, user_id, is_global, created_at
                """,
                (body.name.strip(), category_id),
            )
            category = dict(cur.fetchone())
        conn.commit()
    finally:
        conn.close()
    return category


@router.delete("/{category_id}", status_code=204)
def delete_category(category_id: int, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        _get_editable_category(conn, category_id, caller)
        with conn.cursor() as cur:
            cur.execute("UPDATE videos SET category_id = NULL WHERE category_id = %s", (category_id,))
            cur.execute("DELETE FROM categories WHERE id = %s", (category_id,))
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Deleted category {category_id}")
    return Response(status_code=204)
