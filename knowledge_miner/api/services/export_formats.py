"""
Export rendering for transcripts, summaries and Q&A conversations.

Pure functions: callers load the rows, these turn them into file content,
a download filename and a MIME type.
"""

import csv
import io
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

EXPORT_FORMATS = ("txt", "csv", "json")
EXPORT_TYPES = ("transcript", "summary", "qa")
DEFAULT_EXPORT_FORMAT = "txt"

MIME_TYPES = {
    "txt": "text/plain",
    "csv": "text/csv",
    "json": "application/json",
}

NO_CONTENT_PLACEHOLDER = "No content available for this video."
BATCH_SEPARATOR = "\n\n---\n\n"

_HTML_TAG = re.compile(r'<[^>]*>?')
_UNSAFE_FILENAME_CHARS = re.compile(r'[^a-zA-Z0-9]')
_UNDERSCORE_RUN = re.compile(r'_+')


@dataclass
class ExportResult:
    content: str
    filename: str
    mime_type: str

    def to_dict(self) -> Dict[str, str]:
        return {"content": self.content, "filename": self.filename, "mimeType": self.mime_type}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _dump(data: Dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _csv(header: List[str], rows: List[List[Any]], quoting: int = csv.QUOTE_NONNUMERIC) -> str:
    buffer = io.StringIO()
    # Header cells are fixed identifiers and go out unquoted
    buffer.write(",".join(header) + "\n")
    writer = csv.writer(buffer, quoting=quoting, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def get_mime_type(fmt: str) -> str:
    return MIME_TYPES[fmt]


def transcript_lines(transcript: str) -> List[str]:
    """Transcript with HTML tags removed, as non-empty trimmed lines."""
    cleaned = _HTML_TAG.sub('', transcript or '')
    return [line.strip() for line in cleaned.split('\n') if line.strip()]


# =============================================================================
# Single-item formatters
# =============================================================================

def format_transcript(transcript: str, fmt: str, exported_at: Optional[datetime] = None) -> str:
    lines = transcript_lines(transcript)
    if fmt == "txt":
        return "\n".join(lines)

    if fmt == "csv":
        return _csv(["Line", "Content"], [[i, line] for i, line in enumerate(lines, start=1)])

    return _dump({
        "transcript": lines,
        "metadata": {"totalLines": len(lines), "exportedAt": _iso(exported_at or _now())},
    })


def format_summary(summary: List[str], fmt: str, exported_at: Optional[datetime] = None) -> str:
    if fmt == "txt":
        return "\n\n".join(f"{i}. {point}" for i, point in enumerate(summary, start=1))

    if fmt == "csv":
        return _csv(["Point", "Content"], [[i, point] for i, point in enumerate(summary, start=1)])

    return _dump({
        "summary": summary,
        "metadata": {"totalPoints": len(summary), "exportedAt": _iso(exported_at or _now())},
    })


def format_qa(title: str, messages: List[Dict[str, Any]], fmt: str, exported_at: Optional[datetime] = None) -> str:
    if fmt == "txt":
        output = f"# {title}\n\n"
        for message in messages:
            role = "User" if message.get("role") == "user" else "Assistant"
            output += f"{role}: {message.get('content', '')}\n\n"
        return output

    if fmt == "csv":
        return _csv(
            ["Role", "Message"],
            [[message.get("role", ""), message.get("content", "")] for message in messages],
            quoting=csv.QUOTE_MINIMAL,
        )

    return _dump({
        "title": title,
        "messages": messages,
        "metadata": {"messageCount": len(messages), "exportedAt": _iso(exported_at or _now())},
    })


# =============================================================================
# Batch formatter
# =============================================================================

def _video_content(video: Dict[str, Any], export_type: str) -> Optional[Any]:
    if export_type == "transcript" and video.get("transcript"):
        return video["transcript"]
    if export_type == "summary" and video.get("summary"):
        return video["summary"]
    return None


def format_batch(videos: List[Dict[str, Any]], export_type: str, fmt: str, exported_at: Optional[datetime] = None) -> str:
    """Transcripts or summaries of several videos in one file. Q&A is not batchable."""
    if export_type == "qa":
        raise ValueError("Batch export is not supported for Q&A conversations")

    if fmt == "txt":
        sections = []
        for video in videos:
            content = _video_content(video, export_type)
            if content is None:
                body = NO_CONTENT_PLACEHOLDER + "\n"
            elif export_type == "transcript":
                body = format_transcript(content, "txt")
            else:
                body = format_summary(content, "txt")
            sections.append(f"# {video.get('title', '')}\n\n{body}")
        return BATCH_SEPARATOR.join(sections)

    if fmt == "csv":
        rows = []
        for video in videos:
            content = _video_content(video, export_type)
            if content is None:
                continue
            items = transcript_lines(content) if export_type == "transcript" else content
            rows.extend([video.get("title", ""), str(video.get("id", "")), item] for item in items)
        last_column = "Content" if export_type == "transcript" else "Summary Point"
        return _csv(["Video Title", "Video ID", last_column], rows, quoting=csv.QUOTE_ALL)

    entries = []
    for video in videos:
        content = _video_content(video, export_type)
        if content is not None and export_type == "transcript":
            content = transcript_lines(content)
        entries.append({
            "id": video.get("id"),
            "title": video.get("title"),
            "youtube_id": video.get("youtube_id"),
            export_type: content,
        })
    return _dump({
        "videos": entries,
        "metadata": {
            "exportType": export_type,
            "totalVideos": len(videos),
            "exportedAt": _iso(exported_at or _now()),
        },
    })


# =============================================================================
# Filenames
# =============================================================================

def sanitize_title(title: str, max_length: int = 50) -> str:
    sanitized = _UNSAFE_FILENAME_CHARS.sub('_', title or '')
    return _UNDERSCORE_RUN.sub('_', sanitized)[:max_length]


def filename_timestamp(moment: Optional[datetime] = None) -> str:
    """"2024-01-05T10:20:30.123Z" -> "2024-01-05-10-20-30"."""
    return re.sub(r'[:T.]', '-', _iso(moment or _now()))[:19]


def generate_filename(
    export_type: str,
    fmt: str,
    title: str,
    is_batch: bool = False,
    moment: Optional[datetime] = None,
) -> str:
    timestamp = filename_timestamp(moment)
    if is_batch:
        return f"{export_type}_batch_{timestamp}.{fmt}"
    return f"{sanitize_title(title)}_{export_type}_{timestamp}.{fmt}"


# =============================================================================
# Entry points
# =============================================================================

def export_single(
    video: Dict[str, Any],
    export_type: str,
    fmt: str,
    conversation: Optional[Dict[str, Any]] = None,
    moment: Optional[datetime] = None,
) -> ExportResult:
    """
    Export one video's transcript, summary or a Q&A conversation about it.

    Raises ValueError when the requested content does not exist.
    """
    moment = moment or _now()

    if export_type == "transcript":
        if not video.get("transcript"):
            raise ValueError("No transcript available for this video")
        content = format_transcript(video["transcript"], fmt, moment)
        title = video.get("title", "")
    elif export_type == "summary":
        if not video.get("summary"):
            raise ValueError("No summary available for this video")
        content = format_summary(video["summary"], fmt, moment)
        title = video.get("title", "")
    elif export_type == "qa":
        if not conversation:
            raise ValueError("Q&A conversation ID is required for QA exports")
        content = format_qa(conversation.get("title", ""), conversation.get("messages") or [], fmt, moment)
        title = f"{video.get('title', '')}_{conversation.get('title', '')}"
    else:
        raise ValueError(f"Unsupported export type: {export_type}")

    return ExportResult(
        content=content,
        filename=generate_filename(export_type, fmt, title, moment=moment),
        mime_type=get_mime_type(fmt),
    )


def export_batch(
    videos: List[Dict[str, Any]],
    export_type: str,
    fmt: str,
    moment: Optional[datetime] = None,
) -> ExportResult:
    if not videos:
        raise ValueError("No valid videos found for batch export")

    moment = moment or _now()
    return ExportResult(
        content=format_batch(videos, export_type, fmt, moment),
        filename=generate_filename(export_type, fmt, "multiple_videos", is_batch=True, moment=moment),
        mime_type=get_mime_type(fmt),
    )
