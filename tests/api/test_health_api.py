"""
Tests for root, health and status endpoints.
"""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from knowledge_miner.api import main


class TestServiceEndpoints:

    def test_root(self, anonymous_client):
        response = anonymous_client.get("/")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": main.SERVICE_NAME}
        assert "X-Request-ID" in response.headers

    def test_root_head(self, anonymous_client):
        assert anonymous_client.head("/").status_code == 200

    def test_health_ok(self, anonymous_client):
        with patch("knowledge_miner.api.main.check_database", return_value=True):
            response = anonymous_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["checks"] == {"database": "ok", "openai": "not_configured"}

    def test_health_degraded(self, anonymous_client):
        with patch("knowledge_miner.api.main.check_database", return_value=False):
            response = anonymous_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"

    def test_status_features(self, anonymous_client, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        body = anonymous_client.get("/api/status").json()

        assert body["version"] == main.API_VERSION
        assert body["features"]["semantic_search"] is True
        assert body["features"]["youtube_data_api"] is False
        assert body["anonymous_video_limit"] == 3


class TestAllowedOrigins:

    def test_default_allows_all(self, monkeypatch):
        monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)
        monkeypatch.delenv("FRONTEND_URL", raising=False)
        assert main.get_allowed_origins() == ["*"]

    def test_comma_separated(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")
        assert main.get_allowed_origins() == ["https://a.example", "https://b.example"]


class TestSessionCleanup:

    def test_run_closes_connection(self):
        conn = MagicMock()
        with patch("knowledge_miner.api.main.get_db_connection", return_value=conn), \
             patch("knowledge_miner.api.services.anonymous_sessions.cleanup_expired_sessions", return_value=4):
            assert main.run_session_cleanup() == 4
        conn.close.assert_called_once()

    def test_run_propagates_database_errors(self):
        conn = MagicMock()
        with patch("knowledge_miner.api.main.get_db_connection", return_value=conn), \
             patch("knowledge_miner.api.services.anonymous_sessions.cleanup_expired_sessions",
                   side_effect=psycopg2.OperationalError("down")):
            with pytest.raises(psycopg2.OperationalError):
                main.run_session_cleanup()
        conn.close.assert_called_once()
