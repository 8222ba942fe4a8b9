"""
Tests for the video analysis and library endpoints.

Tests cover:
- Analyze with and without OpenAI configured
- Guest allowance when saving
- Ownership checks on read, update and delete
- Bulk operations
"""

from unittest.mock import patch

import psycopg2
import pytest

from knowledge_miner.api.services.youtube import VideoMetadata

VIDEO_ROW = {
    "id": 10,
    "youtube_id": "dQw4w9WgXcQ",
    "title": "Never Gonna Give You Up",
    "user_id": 1,
    "anonymous_session_id": None,
    "transcript": "We're no strangers to love",
    "summary": ["A song"],
    "notes": None,
}

SAVE_BODY = {"youtubeId": "dQw4w9WgXcQ", "title": "Never Gonna Give You Up", "channel": "Rick Astley"}


def _metadata():
    return VideoMetadata(
        youtube_id="dQw4w9WgXcQ",
        title="Never Gonna Give You Up",
        channel="Rick Astley",
        thumbnail="https://i.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg",
        duration="3:33",
        publish_date="Oct 25, 2009",
        description="Official video",
    )


@pytest.fixture
def db(mock_db_connection):
    mock_conn, mock_cursor = mock_db_connection
    with patch("knowledge_miner.api.routers.videos.get_db_connection", return_value=mock_conn):
        yield mock_conn, mock_cursor


class TestAnalyze:

    def test_invalid_url(self, anonymous_client):
        response = anonymous_client.post("/api/videos/analyze", json={"url": "https://example.com/watch"})
        assert response.status_code == 400
        assert "Invalid YouTube URL" in response.json()["message"]

    def test_without_openai_has_no_summary(self, anonymous_client):
        with patch("knowledge_miner.api.services.youtube.fetch_video_metadata", return_value=_metadata()), \
             patch("knowledge_miner.api.services.transcripts.fetch_transcript", return_value="lyrics"), \
             patch("knowledge_miner.api.services.llm.generate_summary") as summarize:
            response = anonymous_client.post(
                "/api/videos/analyze", json={"url": "https://youtu.be/dQw4w9WgXcQ"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Never Gonna Give You Up"
        assert body["transcript"] == "lyrics"
        assert body["summary"] is None
        summarize.assert_not_called()

    def test_with_openai_summarises(self, anonymous_client):
        with patch("knowledge_miner.api.services.youtube.fetch_video_metadata", return_value=_metadata()), \
             patch("knowledge_miner.api.services.transcripts.fetch_transcript", return_value="lyrics"), \
             patch("knowledge_miner.api.services.llm.is_openai_configured", return_value=True), \
             patch("knowledge_miner.api.services.llm.generate_summary", return_value=["Point"]):
            response = anonymous_client.post(
                "/api/videos/analyze", json={"url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ"}
            )

        assert response.json()["summary"] == ["Point"]

    def test_no_transcript(self, anonymous_client):
        with patch("knowledge_miner.api.services.youtube.fetch_video_metadata", return_value=_metadata()), \
             patch("knowledge_miner.api.services.transcripts.fetch_transcript", return_value=None):
            response = anonymous_client.post("/api/videos/analyze", json={"url": "dQw4w9WgXcQ"})

        assert response.status_code == 200
        assert response.json()["transcript"] is None


class TestSaveVideo:

    def test_requires_identity(self, anonymous_client):
        assert anonymous_client.post("/api/videos", json=SAVE_BODY).status_code == 401

    def test_guest_limit_reached(self, guest_client, guest_session_id, db):
        with patch("knowledge_miner.api.services.anonymous_sessions.get_or_create_session",
                   return_value={"session_id": guest_session_id, "video_count": 3}), \
             patch("knowledge_miner.api.services.video_store.insert_video") as insert:
            response = guest_client.post("/api/videos", json=SAVE_BODY)

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "ANONYMOUS_LIMIT_REACHED"
        assert "suggestion" in body["details"]
        insert.assert_not_called()

    def test_guest_save_counts_video(self, guest_client, guest_session_id, db):
        mock_conn, _ = db
        saved = dict(VIDEO_ROW, user_id=None, anonymous_session_id=guest_session_id)
        with patch("knowledge_miner.api.services.anonymous_sessions.get_or_create_session",
                   return_value={"session_id": guest_session_id, "video_count": 2}), \
             patch("knowledge_miner.api.services.anonymous_sessions.claim_video_slot", return_value=3) as claim, \
             patch("knowledge_miner.api.services.video_store.insert_video", return_value=saved) as insert:
            response = guest_client.post("/api/videos", json=SAVE_BODY)

        assert response.status_code == 201
        fields = insert.call_args.args[1]
        assert fields["user_id"] is None
        assert fields["anonymous_session_id"] == guest_session_id
        assert fields["user_type"] == "anonymous"
        assert insert.call_args.kwargs == {"commit": False}
        claim.assert_called_once_with(mock_conn, guest_session_id)
        mock_conn.commit.assert_called_once()

    def test_concurrent_save_loses_slot(self, guest_client, guest_session_id, db):
        mock_conn, _ = db
        with patch("knowledge_miner.api.services.anonymous_sessions.get_or_create_session",
                   return_value={"session_id": guest_session_id, "video_count": 2}), \
             patch("knowledge_miner.api.services.anonymous_sessions.claim_video_slot", return_value=None), \
             patch("knowledge_miner.api.services.video_store.insert_video") as insert:
            response = guest_client.post("/api/videos", json=SAVE_BODY)

        assert response.status_code == 403
        assert response.json()["code"] == "ANONYMOUS_LIMIT_REACHED"
        insert.assert_not_called()
        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    def test_failed_insert_releases_slot(self, guest_client, guest_session_id, db):
        mock_conn, _ = db
        with patch("knowledge_miner.api.services.anonymous_sessions.get_or_create_session",
                   return_value={"session_id": guest_session_id, "video_count": 0}), \
             patch("knowledge_miner.api.services.anonymous_sessions.claim_video_slot", return_value=1), \
             patch("knowledge_miner.api.services.video_store.insert_video",
                   side_effect=psycopg2.IntegrityError("bad category")):
            with pytest.raises(psycopg2.IntegrityError):
                guest_client.post("/api/videos", json=SAVE_BODY)

        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()
        mock_conn.close.assert_called_once()

    def test_user_save(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.insert_video", return_value=VIDEO_ROW) as insert, \
             patch("knowledge_miner.api.services.anonymous_sessions.get_or_create_session") as session:
            response = user_client.post("/api/videos", json=SAVE_BODY)

        assert response.status_code == 201
        assert response.json()["video"]["id"] == 10
        fields = insert.call_args.args[1]
        assert fields["user_id"] == 1
        assert fields["anonymous_session_id"] is None
        assert fields["user_type"] == "registered"
        session.assert_not_called()

    def test_embeds_when_openai_configured(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.insert_video", return_value=VIDEO_ROW), \
             patch("knowledge_miner.api.services.llm.is_openai_configured", return_value=True), \
             patch("knowledge_miner.api.services.embeddings.store_content_embeddings") as store:
            user_client.post("/api/videos", json=SAVE_BODY)

        assert [c.args[3] for c in store.call_args_list] == ["transcript", "summary"]

    def test_embedding_failure_keeps_saved_video(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.insert_video", return_value=VIDEO_ROW), \
             patch("knowledge_miner.api.services.llm.is_openai_configured", return_value=True), \
             patch("knowledge_miner.api.services.embeddings.store_content_embeddings",
                   side_effect=[psycopg2.OperationalError("insert failed"), 1]) as store:
            response = user_client.post("/api/videos", json=SAVE_BODY)

        assert response.status_code == 201
        assert response.json()["video"]["id"] == 10
        assert store.call_count == 2

    def test_invalid_rating(self, user_client):
        response = user_client.post("/api/videos", json=dict(SAVE_BODY, rating=6))
        assert response.status_code == 422


class TestLibrary:

    def test_no_identity_gets_empty_page(self, anonymous_client):
        with patch("knowledge_miner.api.routers.videos.get_db_connection") as get_conn:
            response = anonymous_client.get("/api/videos")

        assert response.json() == {"videos": [], "totalCount": 0, "hasMore": False}
        get_conn.assert_not_called()

    def test_filters_are_forwarded(self, user_client, db):
        page = {"videos": [VIDEO_ROW], "totalCount": 1, "hasMore": False}
        with patch("knowledge_miner.api.services.video_store.search_videos", return_value=page) as search:
            response = user_client.get(
                "/api/videos",
                params={"query": " song ", "rating_min": 3, "is_favorite": "true", "sort_by": "title", "page": 2},
            )

        assert response.status_code == 200
        assert response.json()["totalCount"] == 1
        params = search.call_args.args[3]
        assert params.query == "song"
        assert params.rating_min == 3
        assert params.is_favorite is True
        assert params.sort_by == "title"
        assert params.page == 2

    def test_invalid_sort(self, user_client):
        assert user_client.get("/api/videos", params={"sort_by": "views"}).status_code == 422


class TestSingleVideo:

    def test_not_found(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=None):
            response = user_client.get("/api/videos/99")
        assert response.status_code == 404
        assert response.json()["code"] == "RESOURCE_NOT_FOUND"

    def test_not_owner(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=dict(VIDEO_ROW, user_id=2)):
            response = user_client.get("/api/videos/10")
        assert response.status_code == 403

    def test_guest_owner(self, guest_client, guest_session_id, db):
        video = dict(VIDEO_ROW, user_id=None, anonymous_session_id=guest_session_id)
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=video):
            response = guest_client.get("/api/videos/10")
        assert response.status_code == 200

    def test_update_without_fields(self, user_client):
        assert user_client.patch("/api/videos/10", json={}).status_code == 400

    def test_update_rejects_null_for_required_columns(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.update_video") as update:
            response = user_client.patch("/api/videos/10", json={"is_favorite": None, "title": None})

        assert response.status_code == 400
        assert response.json()["details"] == {"fields": ["title", "is_favorite"]}
        update.assert_not_called()

    def test_update_allows_clearing_nullable_fields(self, user_client, db):
        updated = dict(VIDEO_ROW, rating=None)
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=VIDEO_ROW), \
             patch("knowledge_miner.api.services.video_store.update_video", return_value=updated) as update:
            response = user_client.patch("/api/videos/10", json={"rating": None, "category_id": None})

        assert response.status_code == 200
        assert update.call_args.args[2] == {"rating": None, "category_id": None}

    def test_embedding_database_error_is_not_fatal(self, user_client, db):
        updated = dict(VIDEO_ROW, notes="My note")
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=VIDEO_ROW), \
             patch("knowledge_miner.api.services.video_store.update_video", return_value=updated), \
             patch("knowledge_miner.api.services.llm.is_openai_configured", return_value=True), \
             patch("knowledge_miner.api.services.embeddings.store_content_embeddings",
                   side_effect=psycopg2.OperationalError("connection lost")):
            response = user_client.patch("/api/videos/10", json={"notes": "My note"})

        assert response.status_code == 200
        assert response.json()["notes"] == "My note"

    def test_update_notes_reindexes(self, user_client, db):
        updated = dict(VIDEO_ROW, notes="My note")
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=VIDEO_ROW), \
             patch("knowledge_miner.api.services.video_store.update_video", return_value=updated) as update, \
             patch("knowledge_miner.api.services.llm.is_openai_configured", return_value=True), \
             patch("knowledge_miner.api.services.embeddings.store_content_embeddings") as store:
            response = user_client.patch("/api/videos/10", json={"notes": "My note"})

        assert response.status_code == 200
        assert update.call_args.args[2] == {"notes": "My note"}
        assert store.call_args.args[3:5] == ("note", "My note")

    def test_delete_guest_video_decrements_counter(self, guest_client, guest_session_id, db):
        video = dict(VIDEO_ROW, user_id=None, anonymous_session_id=guest_session_id)
        with patch("knowledge_miner.api.services.video_store.get_video", return_value=video), \
             patch("knowledge_miner.api.services.video_store.delete_videos") as delete, \
             patch("knowledge_miner.api.services.anonymous_sessions.decrement_video_count") as decrement:
            response = guest_client.delete("/api/videos/10")

        assert response.status_code == 200
        delete.assert_called_once()
        decrement.assert_called_once()


class TestBulkOperations:

    def test_bulk_update_rejects_foreign_ids(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.find_owned_ids", return_value={1}), \
             patch("knowledge_miner.api.services.video_store.bulk_update_videos") as update:
            response = user_client.patch("/api/videos", json={"ids": [1, 2], "data": {"is_favorite": True}})

        assert response.status_code == 403
        assert response.json()["details"] == {"video_ids": [2]}
        update.assert_not_called()

    def test_bulk_update(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.find_owned_ids", return_value={1, 2}), \
             patch("knowledge_miner.api.services.video_store.bulk_update_videos", return_value=2) as update:
            response = user_client.patch("/api/videos", json={"ids": [1, 2, 2], "data": {"rating": 4}})

        assert response.json() == {"updated": 2}
        assert update.call_args.args[1:] == ([1, 2], {"rating": 4})

    def test_bulk_update_rejects_null_title(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.bulk_update_videos") as update:
            response = user_client.patch("/api/videos", json={"ids": [1], "data": {"title": None}})

        assert response.status_code == 400
        assert response.json()["details"] == {"fields": ["title"]}
        update.assert_not_called()

    def test_bulk_delete(self, user_client, db):
        with patch("knowledge_miner.api.services.video_store.find_owned_ids", return_value={1, 2}), \
             patch("knowledge_miner.api.services.video_store.get_videos", return_value=[]), \
             patch("knowledge_miner.api.services.video_store.delete_videos", return_value=2):
            response = user_client.request("DELETE", "/api/videos/bulk", json={"ids": [1, 2]})

        assert response.status_code == 200
        assert response.json() == {"deleted": 2}

    def test_bulk_delete_requires_ids(self, user_client):
        response = user_client.request("DELETE", "/api/videos/bulk", json={"ids": []})
        assert response.status_code == 422
