"""
Tests for resolving the caller from cookies and the guest session header.
"""

import pytest
from starlette.requests import Request

from knowledge_miner.api.dependencies import Caller, get_caller, require_session, require_user
from knowledge_miner.api.errors import AuthenticationError
from knowledge_miner.api.services.auth_tokens import create_access_token, create_refresh_token


def _request(cookie=None, session=None):
    headers = []
    if cookie:
        headers.append((b"cookie", cookie.encode()))
    if session:
        headers.append((b"x-anonymous-session", session.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestGetCaller:

    def test_nobody(self):
        caller = get_caller(_request())
        assert caller == Caller()
        assert not caller.is_authenticated
        assert not caller.is_anonymous

    def test_guest(self, guest_session_id):
        caller = get_caller(_request(session=guest_session_id))
        assert caller.is_anonymous
        assert caller.user_type == "anonymous"

    def test_malformed_session_ignored(self):
        assert get_caller(_request(session="not-a-session")).anonymous_session_id is None

    def test_user(self, guest_session_id):
        token = create_access_token(8, {"username": "dana"})
        caller = get_caller(_request(cookie=f"access_token={token}", session=guest_session_id))

        assert caller.user_id == 8
        assert caller.username == "dana"
        assert caller.user_type == "registered"
        assert caller.anonymous_session_id == guest_session_id
        assert not caller.is_anonymous

    def test_refresh_token_is_not_an_access_token(self):
        token = create_refresh_token(8)
        assert get_caller(_request(cookie=f"access_token={token}")).user_id is None


class TestOwnership:

    def test_user_owns_by_id(self):
        assert Caller(user_id=1).owns({"user_id": 1, "anonymous_session_id": None})
        assert not Caller(user_id=1).owns({"user_id": 2, "anonymous_session_id": None})

    def test_guest_owns_by_session(self, guest_session_id):
        caller = Caller(anonymous_session_id=guest_session_id)
        assert caller.owns({"user_id": None, "anonymous_session_id": guest_session_id})
        assert not caller.owns({"user_id": None, "anonymous_session_id": "anon_other"})

    def test_nobody_owns_nothing(self):
        assert not Caller().owns({"user_id": None, "anonymous_session_id": None})


class TestRequirements:

    def test_require_user(self):
        with pytest.raises(AuthenticationError):
            require_user(Caller(anonymous_session_id="anon_x"))
        assert require_user(Caller(user_id=1)).user_id == 1

    def test_require_session(self):
        with pytest.raises(AuthenticationError):
            require_session(Caller())
        assert require_session(Caller(anonymous_session_id="anon_x")).is_anonymous
