"""
Videos Router

Provides endpoints for:
- Analyzing a YouTube URL (metadata, transcript, summary) without saving
- Saving videos to the caller's library (guest sessions are capped)
- Library search with filters, sorting and pagination
- Single and bulk updates / deletes with ownership checks
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Literal, Optional

import psycopg2
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ..db import get_db_connection
from ..dependencies import Caller, get_caller, require_session
from ..errors import (
    AnonymousLimitError,
    ApplicationError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from ..services import anonymous_sessions, embeddings, llm, transcripts, video_store, youtube

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/videos", tags=["videos"])


# =============================================================================
# Pydantic Models
# =============================================================================

class AnalyzeRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=500)


class VideoCreate(BaseModel):
    """Body for saving a video; field names follow the analyze response."""
    model_config = ConfigDict(populate_by_name=True)

    youtube_id: str = Field(..., alias="youtubeId", min_length=1)
    title: str = Field(..., min_length=1, max_length=500)
    channel: str = ""
    duration: Optional[str] = None
    publish_date: Optional[str] = Field(None, alias="publishDate")
    thumbnail: Optional[str] = None
    transcript: Optional[str] = None
    summary: Optional[List[str]] = None
    view_count: Optional[str] = Field(None, alias="viewCount")
    like_count: Optional[str] = Field(None, alias="likeCount")
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    notes: Optional[str] = None
    category_id: Optional[int] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    is_favorite: bool = False
    timestamps: Optional[List[str]] = None


class VideoUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    notes: Optional[str] = None
    category_id: Optional[int] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    is_favorite: Optional[bool] = None
    tags: Optional[List[str]] = None
    timestamps: Optional[List[str]] = None


class BulkUpdateRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=500)
    data: VideoUpdate


class BulkDeleteRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1, max_length=500)


NON_NULLABLE_FIELDS = ("title", "is_favorite")


# =============================================================================
# Helpers
# =============================================================================

def get_owned_video(conn, video_id: int, caller: Caller) -> Dict[str, Any]:
    """Load a video, raising 404 if missing and 403 if the caller doesn't own it."""
    video = video_store.get_video(conn, video_id)
    if not video:
        raise NotFoundError("Video", video_id)
    if not caller.owns(video):
        raise AuthorizationError("You don't have permission to access this video")
    return video


def update_fields(body: BaseModel, non_nullable: Iterable[str]) -> Dict[str, Any]:
    """Fields the client sent, rejecting explicit nulls for NOT NULL columns."""
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No fields to update")
    nulled = [name for name in non_nullable if name in fields and fields[name] is None]
    if nulled:
        raise ValidationError(f"Fields cannot be null: {', '.join(nulled)}", details={"fields": nulled})
    return fields


def _limit_reached() -> AnonymousLimitError:
    return AnonymousLimitError(
        anonymous_sessions.LIMIT_REACHED_MESSAGE,
        anonymous_sessions.LIMIT_REACHED_SUGGESTION,
    )


def _embed_video_content(conn, video: Dict[str, Any]) -> None:
    """Index transcript and summary for semantic search. Failures are logged only."""
    if not llm.is_openai_configured():
        return

    sources = [
        ("transcript", video.get("transcript")),
        ("summary", "\n".join(video.get("summary") or [])),
    ]
    for content_type, text in sources:
        if not text:
            continue
        try:
            embeddings.store_content_embeddings(conn, video["id"], video.get("user_id"), content_type, text)
        except (ApplicationError, psycopg2.Error) as e:
            logger.warning(f"Could not embed {content_type} for video {video['id']}: {e}")


def _assert_all_owned(conn, ids: List[int], caller: Caller) -> List[int]:
    unique_ids = list(dict.fromkeys(ids))
    owned = video_store.find_owned_ids(conn, unique_ids, caller.user_id, caller.anonymous_session_id)
    missing = [i for i in unique_ids if i not in owned]
    if missing:
        raise AuthorizationError(
            "You don't have permission to modify one or more of these videos",
            details={"video_ids": missing},
        )
    return unique_ids


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/analyze")
def analyze_video(body: AnalyzeRequest):
    """Fetch metadata, transcript and (when OpenAI is configured) a summary."""
    youtube_id = youtube.extract_youtube_id(body.url)
    if not youtube_id:
        raise ValidationError("Invalid YouTube URL. Please provide a valid YouTube video URL.")

    metadata = youtube.fetch_video_metadata(youtube_id)
    transcript = transcripts.fetch_transcript(youtube_id)

    summary = None
    if transcript and llm.is_openai_configured():
        try:
            summary = llm.generate_summary(transcript, metadata.title)
        except ApplicationError as e:
            logger.warning(f"Summary generation failed for {youtube_id}: {e.message}")
    elif transcript:
        logger.info(f"Skipping summary for {youtube_id}: OpenAI not configured")

    return {**metadata.to_dict(), "transcript": transcript, "summary": summary}


@router.post("", status_code=201)
def save_video(body: VideoCreate, request: Request, caller: Caller = Depends(require_session)):
    youtube_id = youtube.extract_youtube_id(body.youtube_id) or body.youtube_id

    conn = get_db_connection()
    try:
        if caller.is_anonymous:
            session = anonymous_sessions.get_or_create_session(
                conn,
                caller.anonymous_session_id,
                request.headers.get("User-Agent"),
                request.client.host if request.client else None,
            )
            if not anonymous_sessions.can_add_video(session):
                raise _limit_reached()

        # The slot claim and the insert commit together
        try:
            if caller.is_anonymous and anonymous_sessions.claim_video_slot(conn, caller.anonymous_session_id) is None:
                conn.rollback()
                raise _limit_reached()

            video = video_store.insert_video(conn, {
                "youtube_id": youtube_id,
                "title": body.title,
                "channel": body.channel,
                "duration": body.duration,
                "publish_date": body.publish_date,
                "thumbnail": body.thumbnail,
                "transcript": body.transcript,
                "summary": body.summary,
                "views": body.view_count,
                "likes": body.like_count,
                "description": body.description,
                "tags": body.tags,
                "notes": body.notes,
                "category_id": body.category_id,
                "rating": body.rating,
                "is_favorite": body.is_favorite,
                "timestamps": body.timestamps,
                "user_id": caller.user_id,
                "anonymous_session_id": None if caller.is_authenticated else caller.anonymous_session_id,
                "user_type": caller.user_type,
            }, commit=False)
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise

        _embed_video_content(conn, video)
    finally:
        conn.close()

    return {"message": "Video processed successfully", "video": video}


@router.get("")
def list_videos(
    query: Optional[str] = Query(None, max_length=200),
    category_id: Optional[int] = None,
    collection_id: Optional[int] = None,
    rating_min: Optional[int] = Query(None, ge=1, le=5),
    rating_max: Optional[int] = Query(None, ge=1, le=5),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    is_favorite: Optional[bool] = None,
    sort_by: Literal["title", "date", "rating"] = "date",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(get_caller),
):
    """The caller's library. Callers with no identity get an empty page."""
    if not caller.is_authenticated and not caller.anonymous_session_id:
        return {"videos": [], "totalCount": 0, "hasMore": False}

    params = video_store.LibraryQuery(
        query=query.strip() if query else None,
        category_id=category_id,
        collection_id=collection_id,
        rating_min=rating_min,
        rating_max=rating_max,
        date_from=date_from,
        date_to=date_to,
        is_favorite=is_favorite,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )

    conn = get_db_connection()
    try:
        return video_store.search_videos(conn, caller.user_id, caller.anonymous_session_id, params)
    finally:
        conn.close()


@router.patch("")
def bulk_update_videos(body: BulkUpdateRequest, caller: Caller = Depends(require_session)):
    fields = update_fields(body.data, NON_NULLABLE_FIELDS)

    conn = get_db_connection()
    try:
        ids = _assert_all_owned(conn, body.ids, caller)
        updated = video_store.bulk_update_videos(conn, ids, fields)
    finally:
        conn.close()

    logger.info(f"Bulk updated {updated} videos ({', '.join(sorted(fields))})")
    return {"updated": updated}


@router.delete("/bulk")
def bulk_delete_videos(body: BulkDeleteRequest, caller: Caller = Depends(require_session)):
    conn = get_db_connection()
    try:
        ids = _assert_all_owned(conn, body.ids, caller)
        guest_owned = [
            v for v in video_store.get_videos(conn, ids) if v.get("anonymous_session_id")
        ]
        deleted = video_store.delete_videos(conn, ids)
        if guest_owned and caller.anonymous_session_id:
            anonymous_sessions.decrement_video_count(conn, caller.anonymous_session_id, len(guest_owned))
    finally:
        conn.close()

    logger.info(f"Bulk deleted {deleted} videos")
    return {"deleted": deleted}


@router.get("/{video_id}")
def get_video(video_id: int, caller: Caller = Depends(get_caller)):
    conn = get_db_connection()
    try:
        return get_owned_video(conn, video_id, caller)
    finally:
        conn.close()


@router.patch("/{video_id}")
def update_video(video_id: int, body: VideoUpdate, caller: Caller = Depends(require_session)):
    fields = update_fields(body, NON_NULLABLE_FIELDS)

    conn = get_db_connection()
    try:
        get_owned_video(conn, video_id, caller)
        video = video_store.update_video(conn, video_id, fields)
        if video is None:
            raise HTTPException(status_code=404, detail="Video not found")

        if "notes" in fields and llm.is_openai_configured():
            try:
                if fields["notes"]:
                    embeddings.store_content_embeddings(conn, video_id, video.get("user_id"), "note", fields["notes"])
                else:
                    embeddings.delete_embeddings(conn, video_id, "note")
            except (ApplicationError, psycopg2.Error) as e:
                logger.warning(f"Could not embed notes for video {video_id}: {e}")
    finally:
        conn.close()

    return video


@router.delete("/{video_id}")
def delete_video(video_id: int, caller: Caller = Depends(require_session)):
    conn = get_db_connection()
    try:
        video = get_owned_video(conn, video_id, caller)
        video_store.delete_videos(conn, [video_id])
        if video.get("anonymous_session_id"):
            anonymous_sessions.decrement_video_count(conn, video["anonymous_session_id"])
    finally:
        conn.close()

    logger.info(f"Deleted video {video_id}")
    return {"success": True, "message": "Video deleted"}
