"""
YouTube video metadata.

Lookup order:
1. YouTube Data API v3 (when YOUTUBE_API_KEY is set)
2. yt-dlp info extraction (no download)
3. Minimal record built from the video id alone

Results are cached per video id for an hour.
"""

import os
import re
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
import yt_dlp
from yt_dlp.utils import DownloadError

from ..errors import ExternalServiceError, NotFoundError
from ..utils.cache import TTLCache

logger = logging.getLogger(__name__)

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3/videos"
YOUTUBE_API_TIMEOUT = 10
DESCRIPTION_MAX_CHARS = 300
PLACEHOLDER_THUMBNAIL = "https://via.placeholder.com/480x360?text=No+Thumbnail"

_metadata_cache = TTLCache(ttl_seconds=3600.0, max_entries=512)

_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{11}$')
_URL_PATTERNS = [
    re.compile(r'(?:https?://)?(?:www\.|m\.)?youtube\.com/watch\?(?:.*&)?v=([a-zA-Z0-9_-]{11})'),
    re.compile(r'(?:https?://)?(?:www\.|m\.)?youtube\.com/embed/([a-zA-Z0-9_-]{11})'),
    re.compile(r'(?:https?://)?(?:www\.|m\.)?youtube\.com/v/([a-zA-Z0-9_-]{11})'),
    re.compile(r'(?:https?://)?(?:www\.)?youtu\.be/([a-zA-Z0-9_-]{11})'),
    re.compile(r'(?:https?://)?(?:www\.|m\.)?youtube\.com/shorts/([a-zA-Z0-9_-]{11})'),
]
_ISO_DURATION = re.compile(r'^PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$')


@dataclass
class VideoMetadata:
    youtube_id: str
    title: str
    channel: str
    thumbnail: str
    duration: str
    publish_date: str
    description: str
    view_count: str = "N/A"
    like_count: str = "N/A"
    tags: List[str] = field(default_factory=list)
    source: str = "api"

    @property
    def url(self) -> str:
        return watch_url(self.youtube_id)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "youtubeId": data["youtube_id"],
            "title": data["title"],
            "channel": data["channel"],
            "thumbnail": data["thumbnail"],
            "duration": data["duration"],
            "publishDate": data["publish_date"],
            "url": self.url,
            "description": data["description"],
            "tags": data["tags"],
            "viewCount": data["view_count"],
            "likeCount": data["like_count"],
        }


# =============================================================================
# Parsing / formatting helpers
# =============================================================================

def extract_youtube_id(url: Optional[str]) -> Optional[str]:
    """
    Extract the 11-character video id from a bare id or a watch, embed, v,
    youtu.be or shorts URL. Returns None for anything else.
    """
    if not url:
        return None

    url = url.strip()
    if _ID_PATTERN.match(url):
        return url

    for pattern in _URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def watch_url(youtube_id: str) -> str:
    return f"https://www.youtube.com/watch?v={youtube_id}"


def default_thumbnail(youtube_id: str) -> str:
    return f"https://img.youtube.com/vi/{youtube_id}/hqdefault.jpg"


def _clock(hours: int, minutes: int, seconds: int) -> str:
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_duration(iso_duration: Optional[str]) -> str:
    """ISO-8601 "PT1H2M3S" -> "1:02:03"; "PT4M5S" -> "4:05"."""
    match = _ISO_DURATION.match(iso_duration or "")
    if not match:
        return "0:00"
    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return _clock(hours, minutes, seconds)


def format_seconds(total_seconds: Optional[float]) -> str:
    if total_seconds is None:
        return "Unknown"
    total = int(total_seconds)
    return _clock(total // 3600, (total % 3600) // 60, total % 60)


def format_publish_date(value: Optional[str]) -> str:
    """ISO timestamp or yt-dlp "YYYYMMDD" -> "January 5, 2024"."""
    if not value:
        return "Unknown date"

    parsed = None
    for fmt in ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%dT%H:%M:%S.%fZ", "%Y%m%d", "%Y-%m-%d"):
        try:
            parsed = datetime.strptime(value, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        return "Unknown date"
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def format_count(value: Any) -> str:
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return "N/A"


def truncate_description(description: Optional[str]) -> str:
    if not description:
        return "No description available"
    if len(description) > DESCRIPTION_MAX_CHARS:
        return description[:DESCRIPTION_MAX_CHARS] + "..."
    return description


def best_thumbnail(thumbnails: Optional[Dict[str, Any]]) -> str:
    thumbnails = thumbnails or {}
    for size in ("maxres", "high", "medium", "standard", "default"):
        if thumbnails.get(size, {}).get("url"):
            return thumbnails[size]["url"]
    return PLACEHOLDER_THUMBNAIL


# =============================================================================
# Metadata sources
# =============================================================================

def _fetch_from_data_api(youtube_id: str, api_key: str) -> VideoMetadata:
    try:
        response = requests.get(
            YOUTUBE_API_URL,
            params={"id": youtube_id, "key": api_key, "part": "snippet,contentDetails,statistics"},
            timeout=YOUTUBE_API_TIMEOUT,
        )
    except requests.RequestException as e:
        raise ExternalServiceError("YouTube Data API", str(e))

    if response.status_code in (400, 403):
        raise ExternalServiceError(
            "YouTube Data API",
            "API key is invalid or has reached its quota limit",
            details={"status": response.status_code},
        )
    if response.status_code != 200:
        raise ExternalServiceError("YouTube Data API", f"HTTP {response.status_code}")

    items = response.json().get("items") or []
    if not items:
        raise NotFoundError("Video", youtube_id)

    item = items[0]
    snippet = item.get("snippet", {})
    statistics = item.get("statistics", {})

    return VideoMetadata(
        youtube_id=youtube_id,
        title=snippet.get("title", "Untitled Video"),
        channel=snippet.get("channelTitle", "Unknown Channel"),
        thumbnail=best_thumbnail(snippet.get("thumbnails")),
        duration=format_duration(item.get("contentDetails", {}).get("duration")),
        publish_date=format_publish_date(snippet.get("publishedAt")),
        description=truncate_description(snippet.get("description")),
        view_count=format_count(statistics.get("viewCount")),
        like_count=format_count(statistics.get("likeCount")),
        tags=snippet.get("tags") or [],
        source="api",
    )


def _fetch_with_ytdlp(youtube_id: str) -> Optional[VideoMetadata]:
    ydl_opts = {
        'quiet': True,
        'no_warnings': True,
        'skip_download': True,
    }
    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(watch_url(youtube_id), download=False)
    except DownloadError as e:
        logger.warning(f"yt-dlp could not read {youtube_id}: {e}")
        return None

    if not info:
        return None

    return VideoMetadata(
        youtube_id=youtube_id,
        title=info.get("title") or "Untitled Video",
        channel=info.get("channel") or info.get("uploader") or "Unknown Channel",
        thumbnail=info.get("thumbnail") or default_thumbnail(youtube_id),
        duration=format_seconds(info.get("duration")),
        publish_date=format_publish_date(info.get("upload_date")),
        description=truncate_description(info.get("description")),
        view_count=format_count(info.get("view_count")),
        like_count=format_count(info.get("like_count")),
        tags=info.get("tags") or [],
        source="yt-dlp",
    )


def minimal_metadata(youtube_id: str) -> VideoMetadata:
    return VideoMetadata(
        youtube_id=youtube_id,
        title="Untitled Video",
        channel="Unknown Channel",
        thumbnail=default_thumbnail(youtube_id),
        duration="Unknown",
        publish_date="Unknown date",
        description="No description available",
        source="fallback",
    )


def fetch_video_metadata(youtube_id: str, use_cache: bool = True) -> VideoMetadata:
    """
    Resolve metadata for ``youtube_id``.

    Raises NotFoundError when the Data API reports no such video and
    ExternalServiceError when the Data API rejects the request.
    """
    if use_cache:
        cached = _metadata_cache.get(youtube_id)
        if cached is not None:
            return cached

    api_key = os.getenv("YOUTUBE_API_KEY")
    if api_key:
        logger.info(f"Fetching metadata for {youtube_id} from YouTube Data API")
        metadata = _fetch_from_data_api(youtube_id, api_key)
    else:
        logger.info(f"YOUTUBE_API_KEY not set; using yt-dlp for {youtube_id}")
        metadata = _fetch_with_ytdlp(youtube_id) or minimal_metadata(youtube_id)

    if metadata.source != "fallback":
        _metadata_cache.set(youtube_id, metadata)
    return metadata


def clear_metadata_cache() -> None:
    _metadata_cache.clear()
