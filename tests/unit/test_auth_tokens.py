"""
Tests for JWT session tokens, cookies and password hashing.
"""

import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import Response

from knowledge_miner.api.services import auth_tokens, passwords
from knowledge_miner.api.services.auth_tokens import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    clear_auth_cookies,
    create_access_token,
    create_refresh_token,
    decode_and_validate,
    issue_session,
)


class TestTokens:

    def test_access_token_round_trip(self):
        token = create_access_token(42, {"username": "bob", "role": "user", "password": "nope"})
        payload = decode_and_validate(token, "access")

        assert payload["sub"] == "42"
        assert payload["type"] == "access"
        assert payload["username"] == "bob"
        assert "password" not in payload

    def test_type_mismatch_rejected(self):
        refresh = create_refresh_token(1)
        assert decode_and_validate(refresh, "access") is None
        assert decode_and_validate(refresh, "refresh")["sub"] == "1"

    def test_lifetimes(self):
        access = decode_and_validate(create_access_token(1), "access")
        refresh = decode_and_validate(create_refresh_token(1), "refresh")
        assert access["exp"] - access["iat"] == 8 * 60 * 60
        assert refresh["exp"] - refresh["iat"] == 30 * 24 * 60 * 60

    def test_expired_token(self):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "1", "type": "access", "iat": now - 100, "exp": now - 10},
            auth_tokens._get_secret(),
            algorithm="HS256",
        )
        assert decode_and_validate(token, "access") is None

    def test_wrong_signature(self):
        token = jwt.encode({"sub": "1", "type": "access", "exp": int(time.time()) + 60}, "other", algorithm="HS256")
        assert decode_and_validate(token, "access") is None

    def test_missing_token(self):
        assert decode_and_validate(None, "access") is None
        assert decode_and_validate("", "access") is None

    def test_production_requires_secret(self, monkeypatch):
        monkeypatch.delenv("AUTH_SESSION_SECRET", raising=False)
        monkeypatch.setenv("PYTHON_ENV", "production")
        with pytest.raises(ValueError):
            auth_tokens._get_secret()

    def test_dev_fallback_secret(self, monkeypatch):
        monkeypatch.delenv("AUTH_SESSION_SECRET", raising=False)
        for var in ("PYTHON_ENV", "NODE_ENV", "RENDER", "RAILWAY_ENVIRONMENT", "FLY_APP_NAME",
                    "HEROKU_APP_NAME", "FRONTEND_URL"):
            monkeypatch.delenv(var, raising=False)
        assert auth_tokens._get_secret() == auth_tokens._DEV_SECRET


class TestCookies:

    def _set_cookie_headers(self, response):
        return [value for key, value in response.raw_headers if key == b"set-cookie"]

    def test_issue_session_sets_httponly_cookies(self):
        response = Response()
        issue_session(response, {"id": 3, "username": "carol", "role": "user"})

        headers = [h.decode() for h in self._set_cookie_headers(response)]
        assert len(headers) == 2
        assert headers[0].startswith(f"{ACCESS_COOKIE}=")
        assert headers[1].startswith(f"{REFRESH_COOKIE}=")
        assert all("HttpOnly" in h for h in headers)
        assert all("samesite=lax" in h.lower() for h in headers)

    def test_clear_cookies_expires_both(self):
        response = Response()
        clear_auth_cookies(response)
        headers = [h.decode() for h in self._set_cookie_headers(response)]
        assert len(headers) == 2
        assert all("Max-Age=0" in h for h in headers)


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = passwords.hash_password("correct horse")
        assert hashed != "correct horse"
        assert passwords.verify_password("correct horse", hashed)
        assert not passwords.verify_password("wrong", hashed)

    def test_long_passwords_are_not_truncated(self):
        base = "p" * 80
        hashed = passwords.hash_password(base)
        assert passwords.verify_password(base, hashed)
        assert not passwords.verify_password("p" * 79 + "q", hashed)

    def test_multibyte_password(self):
        password = "пароль-" * 10
        assert passwords.verify_password(password, passwords.hash_password(password))

    def test_malformed_hash(self):
        assert not passwords.verify_password("anything", "not-a-bcrypt-hash")
        assert not passwords.verify_password("anything", "")

    def test_tokens_are_random_hex(self):
        first, second = passwords.generate_token(), passwords.generate_token()
        assert first != second
        assert len(first) == 64
        int(first, 16)

    def test_reset_expiry_is_one_hour(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert passwords.reset_token_expiry(now) == now + timedelta(hours=1)
