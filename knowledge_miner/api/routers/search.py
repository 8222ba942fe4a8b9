"""
Semantic Search Router

POST /api/search embeds the query with OpenAI and ranks the caller's stored
content chunks by cosine similarity. Each hit comes back with a highlighted
snippet, a relevance bar and a content-type badge.
"""

import logging
from typing import List, Literal, Optional

import psycopg2
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, get_caller, require_user
from ..errors import DatabaseError, ServiceUnavailableError
from ..services import embeddings, llm
from ..utils.highlight import get_content_type_badge, get_relevance_indicator, highlight_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])

SEARCH_HISTORY_LIMIT = 20

ContentType = Literal["transcript", "summary", "note", "conversation"]


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=3, max_length=500)
    content_types: Optional[List[ContentType]] = None
    video_id: Optional[int] = None
    category_id: Optional[int] = None
    collection_id: Optional[int] = None
    is_favorite: Optional[bool] = None
    limit: int = Field(10, ge=1, le=100)


def _decorate(hit: dict, query: str) -> dict:
    hit["highlight"] = highlight_text(hit.get("content") or "", query)
    hit["relevance"] = get_relevance_indicator(hit["similarity"])
    hit["badge"] = get_content_type_badge(hit.get("content_type", ""))
    return hit


def _record_search(conn, user_id: int, query: str, results_count: int) -> None:
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO search_history (user_id, query, search_type, results_count)
                VALUES (%s, %s, 'semantic', %s)
                """,
                (user_id, query, results_count),
            )
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        logger.warning(f"Could not record search history for user_id={user_id}: {e}")


@router.post("")
def search(body: SearchRequest, caller: Caller = Depends(get_caller)):
    if not llm.is_openai_configured():
        raise ServiceUnavailableError("Semantic search is unavailable: OpenAI API key not configured")

    query = body.query.strip()
    filters = embeddings.SearchFilters(
        content_types=list(body.content_types or []),
        video_id=body.video_id,
        category_id=body.category_id,
        collection_id=body.collection_id,
        is_favorite=body.is_favorite,
    )

    conn = get_db_connection()
    try:
        try:
            results = embeddings.semantic_search(
                conn,
                query,
                caller.user_id,
                caller.anonymous_session_id,
                filters=filters,
                limit=body.limit,
            )
        except psycopg2.Error as e:
            logger.error(f"Search failed: {e}", exc_info=True)
            raise DatabaseError("Search failed")
        if caller.is_authenticated:
            _record_search(conn, caller.user_id, query, len(results))
    finally:
        conn.close()

    return {"results": [_decorate(hit, query) for hit in results], "query": query}


@router.get("/history")
def search_history(caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, query, search_type, results_count, created_at
                FROM search_history
                WHERE user_id = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (caller.user_id, SEARCH_HISTORY_LIMIT),
            )
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()
