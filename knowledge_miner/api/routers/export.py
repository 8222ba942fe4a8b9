"""
Export Router

- POST /api/export - Export transcripts, summaries or a Q&A conversation
- GET /api/export/preferences - Default export format (guests get "txt")
- POST /api/export/preferences - Save the default export format
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..db import get_db_connection
from ..dependencies import Caller, get_caller, require_user
from ..errors import AuthorizationError, ValidationError
from ..services import export_formats, video_store
from .qa import get_owned_conversation
from .videos import get_owned_video

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])

ExportFormat = Literal["txt", "csv", "json"]


class ExportRequest(BaseModel):
    export_type: Literal["transcript", "summary", "qa"]
    format: ExportFormat = export_formats.DEFAULT_EXPORT_FORMAT
    video_ids: List[int] = Field(..., min_length=1, max_length=500)
    qa_conversation_id: Optional[int] = None


class ExportPreferenceBody(BaseModel):
    default_format: ExportFormat


@router.post("")
def export_content(body: ExportRequest, caller: Caller = Depends(require_user)):
    video_ids = list(dict.fromkeys(body.video_ids))
    if body.export_type == "qa" and len(video_ids) > 1:
        raise ValidationError("Q&A exports are only available for a single video")

    conn = get_db_connection()
    try:
        if len(video_ids) == 1:
            video = get_owned_video(conn, video_ids[0], caller)
            conversation = None
            if body.export_type == "qa":
                if body.qa_conversation_id is None:
                    raise ValidationError("Q&A conversation ID is required for QA exports")
                conversation = get_owned_conversation(conn, body.qa_conversation_id, caller)
                if conversation["video_id"] != video["id"]:
                    raise ValidationError("Conversation does not belong to this video")
            try:
                result = export_formats.export_single(video, body.export_type, body.format, conversation)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
        else:
            owned = video_store.find_owned_ids(conn, video_ids, caller.user_id, caller.anonymous_session_id)
            not_owned = [i for i in video_ids if i not in owned]
            if not_owned:
                raise AuthorizationError(
                    "You don't have permission to export one or more of these videos",
                    details={"video_ids": not_owned},
                )
            videos = video_store.get_videos(conn, video_ids)
            try:
                result = export_formats.export_batch(videos, body.export_type, body.format)
            except ValueError as e:
                raise ValidationError(str(e))
    finally:
        conn.close()

    logger.info(
        f"[Export] {body.export_type} as {body.format} for {len(video_ids)} video(s), user_id={caller.user_id}"
    )
    return result.to_dict()


@router.get("/preferences")
def get_export_preferences(caller: Caller = Depends(get_caller)):
    if not caller.is_authenticated:
        return {"default_format": export_formats.DEFAULT_EXPORT_FORMAT}

    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT default_format FROM export_preferences WHERE user_id = %s", (caller.user_id,))
            row = cur.fetchone()
    finally:
        conn.close()

    return {"default_format": row["default_format"] if row else export_formats.DEFAULT_EXPORT_FORMAT}


@router.post("/preferences")
def save_export_preferences(body: ExportPreferenceBody, caller: Caller = Depends(require_user)):
    conn = get_db_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO export_preferences (user_id, default_format, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (user_id)
                DO UPDATE SET default_format = EXCLUDED.default_format, updated_at = NOW()
                """,
                (caller.user_id, body.default_format),
            )
        conn.commit()
    finally:
        conn.close()

    logger.info(f"[Export] Saved default format {body.default_format} for user_id={caller.user_id}")
    return {"default_format": body.default_format}
