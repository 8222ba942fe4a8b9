"""
Q&A Router

Conversations about a single video, answered by the chat model with the
video transcript as context.

- GET/POST /api/videos/{video_id}/qa - List / start conversations
- GET /api/qa/{conversation_id} - Conversation with messages
- POST /api/qa/{conversation_id}/ask - Ask a question
- DELETE /api/qa/{conversation_id} - Delete a conversation
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import psycopg2
from fastapi import APIRouter, Depends, Response
from psycopg2.extras import Json
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, require_session
from ..errors import (
    ApplicationError,
    AuthorizationError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from ..services import embeddings, llm
from .videos import get_owned_video

logger = logging.getLogger(__name__)

video_qa_router = APIRouter(prefix="/api/videos", tags=["qa"])
router = APIRouter(prefix="/api/qa", tags=["qa"])

CONVERSATION_COLUMNS = "id, video_id, user_id, anonymous_session_id, title, messages, created_at, updated_at"
CITATION_LIMIT = 5
CITATION_CONTENT_TYPES = ["transcript", "summary", "note"]


class ConversationCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class AskRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=2000)


# =============================================================================
# Helpers
# =============================================================================

def get_owned_conversation(conn, conversation_id: int, caller: Caller) -> Dict[str, Any]:
    with conn.cursor() as cur:
        cur.execute(
            f"SELECT {CONVERSATION_COLUMNS} FROM qa_conversations WHERE id = %s",
            (conversation_id,),
        )
        row = cur.fetchone()
    if not row:
        raise NotFoundError("Conversation", conversation_id)
    conversation = dict(row)
    if not caller.owns(conversation):
        raise AuthorizationError("You don't have permission to access this conversation")
    conversation["messages"] = conversation.get("messages") or []
    return conversation


def _find_citations(conn, question: str, video_id: int, caller: Caller) -> List[Dict[str, Any]]:
    """Top matching chunks from the video. Empty when search is unavailable."""
    filters = embeddings.SearchFilters(content_types=CITATION_CONTENT_TYPES, video_id=video_id)
    try:
        hits = embeddings.semantic_search(
            conn, question, caller.user_id, caller.anonymous_session_id, filters=filters, limit=CITATION_LIMIT
        )
    except (ApplicationError, psycopg2.Error) as e:
        logger.warning(f"Citation lookup failed for video {video_id}: {e}")
        return []

    return [
        {
            "id": hit["id"],
            "content": hit["content"],
            "content_type": hit["content_type"],
            "chunk_index": hit["chunk_index"],
            "similarity": round(hit["similarity"], 4),
        }
        for hit in hits
    ]


def conversation_text(messages: List[Dict[str, Any]]) -> str:
    lines = []
    for message in messages:
        speaker = "User" if message.get("role") == "user" else "Assistant"
        lines.append(f"{speaker}: {message.get('content', '')}")
    return "\n\n".join(lines)


def _embed_conversation(conn, conversation: Dict[str, Any], video: Dict[str, Any]) -> None:
    try:
        embeddings.store_content_embeddings(
            conn,
            video["id"],
            video.get("user_id"),
            "conversation",
            conversation_text(conversation["messages"]),
            metadata={"conversation_id": conversation["id"], "title": conversation["title"]},
        )
    except (ApplicationError, psycopg2.Error) as e:
        logger.warning(f"Could not embed conversation {conversation['id']}: {e}")


# =============================================================================
# Endpoints
# =============================================================================

@video_qa_router.get("/{video_id}/qa")
def list_conversations(video_id: int, caller: Caller = Depends(require_session)):
    conn = get_db_connection()
    try:
        get_owned_video(conn, video_id, caller)
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {CONVERSATION_COLUMNS}
                FROM qa_conversations
                WHERE video_id = %s
                  AND ((user_id IS NOT NULL AND user_id = %s)
                       OR (anonymous_session_id IS NOT NULL AND anonymous_session_id = %s))
                ORDER BY updated_at DESC
                """,
                (video_id, caller.user_id, caller.anonymous_session_id),
            )
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


@video_qa_router.post("/{video_id}/qa", status_code=201)
def create_conversation(video_id: int, body: ConversationCreate, caller: Caller = Depends(require_session)):
    conn = get_db_connection()
    try:
        video = get_owned_video(conn, video_id, caller)
        if not video.get("transcript"):
            raise ValidationError("This video has no transcript to ask questions about")

        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO qa_conversations (video_id, user_id, anonymous_session_id, title, messages)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {CONVERSATION_COLUMNS}
                """,
                (
                    video_id,
                    caller.user_id,
                    None if caller.is_authenticated else caller.anonymous_session_id,
                    body.title.strip(),
                    Json([]),
                ),
            )
            conversation = dict(cur.fetchone())
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Created conversation {conversation['id']} for video {video_id}")
    return conversation


@router.get("/{conversation_id}")
def get_conversation(conversation_id: int, caller: Caller = Depends(require_session)):
    conn = get_db_connection()
    try:
        return get_owned_conversation(conn, conversation_id, caller)
    finally:
        conn.close()


@router.post("/{conversation_id}/ask")
def ask_question(conversation_id: int, body: AskRequest, caller: Caller = Depends(require_session)):
    """
    Answer a question about the conversation's video.

    The user turn and the answer (with citations) are appended to the
    conversation, which is then re-embedded for semantic search.
    """
    if not llm.is_openai_configured():
        raise ServiceUnavailableError("Q&A is unavailable: OpenAI API key not configured")

    question = body.question.strip()

    conn = get_db_connection()
    try:
        conversation = get_owned_conversation(conn, conversation_id, caller)
        video = get_owned_video(conn, conversation["video_id"], caller)
        if not video.get("transcript"):
            raise ValidationError("This video has no transcript to ask questions about")

        citations = _find_citations(conn, question, video["id"], caller)
        answer = llm.generate_answer(video["transcript"], video.get("title", ""), question, conversation["messages"])

        now = datetime.now(timezone.utc).isoformat()
        messages = conversation["messages"] + [
            {"role": "user", "content": question, "timestamp": now},
            {"role": "assistant", "content": answer, "citations": citations, "timestamp": now},
        ]

        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE qa_conversations
                SET messages = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING {CONVERSATION_COLUMNS}
                """,
                (Json(messages), conversation_id),
            )
            conversation = dict(cur.fetchone())
        conn.commit()

        _embed_conversation(conn, conversation, video)
    finally:
        conn.close()

    return {"conversation": conversation, "answer": answer, "citations": citations}


@router.delete("/{conversation_id}", status_code=204)
def delete_conversation(conversation_id: int, caller: Caller = Depends(require_session)):
    conn = get_db_connection()
    try:
        conversation = get_owned_conversation(conn, conversation_id, caller)
        embeddings.delete_embeddings(conn, conversation["video_id"], "conversation", conversation_id)
        with conn.cursor() as cur:
            cur.execute("DELETE FROM qa_conversations WHERE id = %s", (conversation_id,))
        conn.commit()
    finally:
        conn.close()

    logger.info(f"Deleted conversation {conversation_id}")
    return Response(status_code=204)
