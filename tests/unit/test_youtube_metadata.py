"""
Tests for YouTube URL parsing, metadata formatting and source fallback.
"""

from unittest.mock import MagicMock, patch

import pytest

from knowledge_miner.api.errors import ExternalServiceError, NotFoundError
from knowledge_miner.api.services import youtube
from knowledge_miner.api.services.youtube import (
    PLACEHOLDER_THUMBNAIL,
    best_thumbnail,
    extract_youtube_id,
    fetch_video_metadata,
    format_count,
    format_duration,
    format_publish_date,
    format_seconds,
    truncate_description,
)


@pytest.fixture(autouse=True)
def clear_cache():
    youtube.clear_metadata_cache()
    yield
    youtube.clear_metadata_cache()


class TestExtractYoutubeId:

    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        "https://m.youtube.com/watch?v=dQw4w9WgXcQ&t=42",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "dQw4w9WgXcQ",
    ])
    def test_supported_forms(self, url):
        assert extract_youtube_id(url) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize("url", [None, "", "https://vimeo.com/123", "not a url"])
    def test_rejects_other_input(self, url):
        assert extract_youtube_id(url) is None


class TestFormatting:

    def test_duration(self):
        assert format_duration("PT1H2M3S") == "1:02:03"
        assert format_duration("PT4M5S") == "4:05"
        assert format_duration("PT45S") == "0:45"
        assert format_duration("garbage") == "0:00"

    def test_seconds(self):
        assert format_seconds(3723) == "1:02:03"
        assert format_seconds(None) == "Unknown"

    def test_publish_date(self):
        assert format_publish_date("2024-01-05T10:00:00Z") == "January 5, 2024"
        assert format_publish_date("20231231") == "December 31, 2023"
        assert format_publish_date(None) == "Unknown date"
        assert format_publish_date("yesterday") == "Unknown date"

    def test_count(self):
        assert format_count("1234567") == "1,234,567"
        assert format_count(None) == "N/A"

    def test_description(self):
        assert truncate_description("") == "No description available"
        long_text = "x" * 400
        assert truncate_description(long_text) == "x" * 300 + "..."

    def test_best_thumbnail(self):
        thumbs = {"default": {"url": "d.jpg"}, "high": {"url": "h.jpg"}}
        assert best_thumbnail(thumbs) == "h.jpg"
        assert best_thumbnail(None) == PLACEHOLDER_THUMBNAIL


class TestFetchVideoMetadata:

    API_ITEM = {
        "snippet": {
            "title": "A Talk",
            "channelTitle": "Channel",
            "publishedAt": "2024-03-01T00:00:00Z",
            "description": "About things",
            "thumbnails": {"high": {"url": "https://img/high.jpg"}},
            "tags": ["one"],
        },
        "contentDetails": {"duration": "PT10M"},
        "statistics": {"viewCount": "1500", "likeCount": "20"},
    }

    def _response(self, status_code=200, items=None):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = {"items": items if items is not None else [self.API_ITEM]}
        return response

    def test_data_api(self, monkeypatch):
        monkeypatch.setenv("YOUTUBE_API_KEY", "key")
        with patch("knowledge_miner.api.services.youtube.requests.get", return_value=self._response()) as mock_get:
            metadata = fetch_video_metadata("dQw4w9WgXcQ")

        assert mock_get.call_args.kwargs["timeout"] == 10
        assert metadata.title == "A Talk"
        assert metadata.duration == "10:00"
        assert metadata.view_count == "1,500"
        data = metadata.to_dict()
        assert data["youtubeId"] == "dQw4w9WgXcQ"
        assert data["url"] == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert data["publishDate"] == "March 1, 2024"

    def test_data_api_results_are_cached(self, monkeypatch):
        monkeypatch.setenv("YOUTUBE_API_KEY", "key")
        with patch("knowledge_miner.api.services.youtube.requests.get", return_value=self._response()) as mock_get:
            fetch_video_metadata("dQw4w9WgXcQ")
            fetch_video_metadata("dQw4w9WgXcQ")
        assert mock_get.call_count == 1

    def test_data_api_quota_error(self, monkeypatch):
        monkeypatch.setenv("YOUTUBE_API_KEY", "key")
        with patch("knowledge_miner.api.services.youtube.requests.get", return_value=self._response(403)):
            with pytest.raises(ExternalServiceError):
                fetch_video_metadata("dQw4w9WgXcQ")

    def test_data_api_unknown_video(self, monkeypatch):
        monkeypatch.setenv("YOUTUBE_API_KEY", "key")
        with patch("knowledge_miner.api.services.youtube.requests.get", return_value=self._response(items=[])):
            with pytest.raises(NotFoundError):
                fetch_video_metadata("dQw4w9WgXcQ")

    def test_ytdlp_when_no_api_key(self, monkeypatch):
        monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
        info = {"title": "From yt-dlp", "uploader": "Someone", "duration": 61, "upload_date": "20240102"}
        with patch("knowledge_miner.api.services.youtube.yt_dlp.YoutubeDL") as mock_ydl:
            mock_ydl.return_value.__enter__.return_value.extract_info.return_value = info
            metadata = fetch_video_metadata("dQw4w9WgXcQ")

        assert metadata.title == "From yt-dlp"
        assert metadata.channel == "Someone"
        assert metadata.duration == "1:01"
        assert metadata.source == "yt-dlp"

    def test_minimal_fallback_is_not_cached(self, monkeypatch):
        monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)
        with patch("knowledge_miner.api.services.youtube._fetch_with_ytdlp", return_value=None) as mock_fetch:
            first = fetch_video_metadata("dQw4w9WgXcQ")
            fetch_video_metadata("dQw4w9WgXcQ")

        assert first.title == "Untitled Video"
        assert first.thumbnail == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
        assert mock_fetch.call_count == 2
