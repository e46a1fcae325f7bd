"""Listening-server capability and a Flask adapter.

A listening server is anything that can register a request handler via
``use(handler)``; it may also expose a ``port``, which must be 80 for
HTTP-01 validation.  :class:`FlaskListeningServer` adapts a Flask
application: handlers are WSGI middleware factories that wrap
``app.wsgi_app``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

    from flask import Flask

log = logging.getLogger(__name__)


@runtime_checkable
class ListeningServer(Protocol):
    """A server that accepts request-handling middleware."""

    def use(self, handler: Callable[..., Any]) -> Any:  # noqa: ANN401
        ...


class FlaskListeningServer:
    """Expose a Flask application as a :class:`ListeningServer`.

    Parameters
    ----------
    app:
        The application serving plain HTTP.
    port:
        Port the application is bound to.

    """

    def __init__(self, app: Flask, *, port: int = 80) -> None:
        self.app = app
        self.port = port

    def use(self, handler: Callable[[Any], Any]) -> None:
        """Wrap the application's WSGI callable with *handler*."""
        self.app.wsgi_app = handler(self.app.wsgi_app)  # type: ignore[method-assign]
        log.debug("Registered middleware %r on %s", handler, self.app.name)

    def __repr__(self) -> str:
        return f"<FlaskListeningServer app={self.app.name} port={self.port}>"
