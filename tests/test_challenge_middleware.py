"""Tests for dadissl.middleware and the Flask listening-server adapter."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from flask import Flask

from dadissl.middleware import (
    CHALLENGE_PATH_PREFIX,
    ChallengeStore,
    HttpChallengeMiddleware,
    challenge_middleware,
)
from dadissl.server import FlaskListeningServer, ListeningServer

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_app() -> Flask:
    app = Flask(__name__)
    app.config["TESTING"] = True

    @app.route("/")
    def _index():
        return "home"

    @app.route("/.well-known/acme-challenge/<token>", methods=["POST"])
    def _post_challenge(token):
        return f"app:{token}"

    return app


@pytest.fixture()
def store() -> ChallengeStore:
    s = ChallengeStore()
    s.add("abc123", "abc123.thumbprint")
    return s


@pytest.fixture()
def client(store):
    app = _make_app()
    FlaskListeningServer(app).use(challenge_middleware(store))
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# ChallengeStore
# ═══════════════════════════════════════════════════════════════════════════


class TestChallengeStore:
    def test_add_get_remove(self):
        s = ChallengeStore()
        s.add("t", "t.k")
        assert s.get("t") == "t.k"
        assert len(s) == 1
        s.remove("t")
        assert s.get("t") is None
        assert len(s) == 0

    def test_remove_unknown_is_noop(self):
        ChallengeStore().remove("missing")

    def test_clear(self, store):
        store.clear()
        assert len(store) == 0


# ═══════════════════════════════════════════════════════════════════════════
# Middleware through Flask
# ═══════════════════════════════════════════════════════════════════════════


class TestThroughFlask:
    def test_known_token(self, client):
        resp = client.get(f"{CHALLENGE_PATH_PREFIX}abc123")
        assert resp.status_code == 200
        assert resp.data == b"abc123.thumbprint"
        assert resp.content_type.startswith("text/plain")

    def test_unknown_token(self, client):
        resp = client.get(f"{CHALLENGE_PATH_PREFIX}nope")
        assert resp.status_code == 404

    def test_other_paths_pass_through(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.data == b"home"

    def test_other_methods_pass_through(self, client):
        resp = client.post(f"{CHALLENGE_PATH_PREFIX}abc123")
        assert resp.data == b"app:abc123"

    def test_token_added_after_registration(self, client, store):
        store.add("late", "late.thumbprint")
        assert client.get(f"{CHALLENGE_PATH_PREFIX}late").data == b"late.thumbprint"


class TestWsgiDirect:
    def test_nested_path_is_not_a_token(self, store):
        mw = HttpChallengeMiddleware(MagicMock(), store)
        start_response = MagicMock()
        mw(
            {"PATH_INFO": f"{CHALLENGE_PATH_PREFIX}abc123/extra", "REQUEST_METHOD": "GET"},
            start_response,
        )
        assert start_response.call_args[0][0] == "404 Not Found"

    def test_head_has_no_body(self, store):
        mw = HttpChallengeMiddleware(MagicMock(), store)
        start_response = MagicMock()
        body = mw(
            {"PATH_INFO": f"{CHALLENGE_PATH_PREFIX}abc123", "REQUEST_METHOD": "HEAD"},
            start_response,
        )
        assert body == [b""]
        assert start_response.call_args[0][0] == "200 OK"


# ═══════════════════════════════════════════════════════════════════════════
# FlaskListeningServer
# ═══════════════════════════════════════════════════════════════════════════


class TestFlaskListeningServer:
    def test_satisfies_capability(self):
        assert isinstance(FlaskListeningServer(_make_app()), ListeningServer)

    def test_default_port_is_80(self):
        assert FlaskListeningServer(_make_app()).port == 80

    def test_use_wraps_wsgi_app(self):
        app = _make_app()
        original = app.wsgi_app
        handler = MagicMock(return_value="wrapped")

        FlaskListeningServer(app).use(handler)

        handler.assert_called_once_with(original)
        assert app.wsgi_app == "wrapped"

    def test_plain_object_is_not_a_listening_server(self):
        assert not isinstance(object(), ListeningServer)
