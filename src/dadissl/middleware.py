"""HTTP-01 challenge answering.

:class:`ChallengeStore` holds the tokens a provider is currently
proving; :class:`HttpChallengeMiddleware` is a WSGI middleware that
answers ``GET /.well-known/acme-challenge/<token>`` from the store and
passes every other request through to the wrapped application.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

log = logging.getLogger(__name__)

CHALLENGE_PATH_PREFIX = "/.well-known/acme-challenge/"


class ChallengeStore:
    """Thread-safe ``token → key authorization`` map."""

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, token: str, key_authorization: str) -> None:
        with self._lock:
            self._tokens[token] = key_authorization
        log.info("Registered HTTP-01 challenge token %s", token)

    def remove(self, token: str) -> None:
        with self._lock:
            removed = self._tokens.pop(token, None)
        if removed is not None:
            log.info("Cleared HTTP-01 challenge token %s", token)

    def get(self, token: str) -> str | None:
        with self._lock:
            return self._tokens.get(token)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


class HttpChallengeMiddleware:
    """WSGI middleware serving HTTP-01 key authorizations.

    Requests under ``/.well-known/acme-challenge/`` are answered here:
    ``200 text/plain`` for a known token, ``404`` otherwise.  Only ``GET``
    and ``HEAD`` are answered; other methods under the prefix and all
    other paths reach the wrapped application unchanged.
    """

    def __init__(self, app, store: ChallengeStore) -> None:
        self.app = app
        self.store = store

    def __call__(self, environ, start_response) -> Iterable[bytes]:
        path = environ.get("PATH_INFO", "")
        method = environ.get("REQUEST_METHOD", "GET").upper()

        if not path.startswith(CHALLENGE_PATH_PREFIX) or method not in ("GET", "HEAD"):
            return self.app(environ, start_response)

        token = path[len(CHALLENGE_PATH_PREFIX) :]
        key_authorization = self.store.get(token) if token and "/" not in token else None

        if key_authorization is None:
            log.warning("Unknown HTTP-01 challenge token requested: %s", token)
            body = b"Not Found"
            status = "404 Not Found"
        else:
            log.info("Answered HTTP-01 challenge for token %s", token)
            body = key_authorization.encode("ascii")
            status = "200 OK"

        start_response(
            status,
            [
                ("Content-Type", "text/plain"),
                ("Content-Length", str(len(body))),
            ],
        )
        return [b""] if method == "HEAD" else [body]


def challenge_middleware(store: ChallengeStore) -> Callable[..., HttpChallengeMiddleware]:
    """Return a factory wrapping a WSGI app with :class:`HttpChallengeMiddleware`."""

    def wrap(app) -> HttpChallengeMiddleware:
        return HttpChallengeMiddleware(app, store)

    return wrap
