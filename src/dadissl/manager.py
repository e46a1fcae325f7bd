"""Certificate lifecycle orchestration.

:class:`SSLManager` is a :class:`ConfigBuilder` that can also start the
certificate lifecycle.  :meth:`SSLManager.start` runs one pass of the
startup state machine::

    idle → middleware_attached → directory_checked → watching | issuing

1. Build the configuration snapshot and load the provider.
2. Register the provider's middleware with the listening server.
3. Create the certificate directory when permitted.
4. Probe ``domain.key`` and ``chained.pem``.
5. Both present: watch for renewal (when enabled).  Otherwise: issue.

Usage::

    from dadissl import SSLManager
    from dadissl.server import FlaskListeningServer

    (
        SSLManager()
        .set_domains(["example.com"])
        .set_registration_email("ops@example.com")
        .set_listening_server(FlaskListeningServer(app))
        .start()
    )
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from dadissl.config.builder import ConfigBuilder
from dadissl.errors import PreconditionFailed
from dadissl.providers.base import Provider, SupportsMiddleware
from dadissl.providers.registry import load_provider
from dadissl.server import ListeningServer
from dadissl.storage import CertificateStore

if TYPE_CHECKING:
    from dadissl.config.settings import SSLSettings

log = logging.getLogger(__name__)


class StartupState(StrEnum):
    IDLE = "idle"
    MIDDLEWARE_ATTACHED = "middleware_attached"
    DIRECTORY_CHECKED = "directory_checked"
    WATCHING = "watching"
    ISSUING = "issuing"


# watching & issuing are terminal for one start() pass.
STARTUP_TRANSITIONS: dict[StartupState, frozenset[StartupState]] = {
    StartupState.IDLE: frozenset({StartupState.MIDDLEWARE_ATTACHED}),
    StartupState.MIDDLEWARE_ATTACHED: frozenset({StartupState.DIRECTORY_CHECKED}),
    StartupState.DIRECTORY_CHECKED: frozenset(
        {StartupState.WATCHING, StartupState.ISSUING},
    ),
    StartupState.WATCHING: frozenset(),
    StartupState.ISSUING: frozenset(),
}


class SSLManager(ConfigBuilder):
    """Configure, then start, the certificate lifecycle for one server.

    Not designed for repeated :meth:`start` calls: each call re-runs the
    whole sequence from ``idle`` with a freshly loaded provider.
    """

    def __init__(self) -> None:
        super().__init__()
        self._state = StartupState.IDLE
        self._settings: SSLSettings | None = None
        self._provider: Provider | None = None
        self._store: CertificateStore | None = None

    @property
    def state(self) -> StartupState:
        return self._state

    @property
    def settings(self) -> SSLSettings | None:
        """The snapshot used by the last :meth:`start`, or ``None``."""
        return self._settings

    @property
    def provider(self) -> Provider | None:
        return self._provider

    # -- startup steps -------------------------------------------------------

    def add_middleware(self) -> None:
        """Register the provider's middleware with the listening server.

        Raises
        ------
        PreconditionFailed
            If no listening server is configured, the provider has no
            middleware, or the server cannot register middleware.

        """
        server = self._settings.listening_server if self._settings else None
        if server is None:
            msg = "Listening server must be present in order to add middleware"
            raise PreconditionFailed(msg)
        if self._provider is None or not isinstance(self._provider, SupportsMiddleware):
            msg = "Cannot add middleware without a provider"
            raise PreconditionFailed(msg)
        if not isinstance(server, ListeningServer):
            msg = "Listening server does not support middleware"
            raise PreconditionFailed(msg)
        server.use(self._provider.middleware())
        log.debug("Attached %s middleware to %r", self._settings.provider, server)

    def check_and_create_directory(self) -> None:
        """Create the certificate directory if permission is granted."""
        if self._settings.create_directory:
            path = self._store.ensure_directory()
            log.debug("Certificate directory ready: %s", path)

    def get_key(self) -> bytes | None:
        return self._store.get_key() if self._store else None

    def get_certificate(self) -> bytes | None:
        return self._store.get_certificate() if self._store else None

    # -- state machine -------------------------------------------------------

    def start(self) -> SSLManager:
        """Run the startup sequence once and dispatch to the provider.

        Raises
        ------
        PreconditionFailed
            From :meth:`add_middleware` or provider loading.  Nothing on
            disk has been touched and the provider was not dispatched.
        IOFailure
            If the certificate directory cannot be created.

        """
        self._state = StartupState.IDLE
        self._settings = self.build()
        self._store = CertificateStore(self._settings.directory)
        self._provider = load_provider(self._settings)

        self.add_middleware()
        self._transition(StartupState.MIDDLEWARE_ATTACHED)

        self.check_and_create_directory()
        self._transition(StartupState.DIRECTORY_CHECKED)

        key, cert = self._store.read_materials()

        if key is not None and cert is not None:
            if self._settings.auto_renew:
                log.info("Existing certificate found; watching for renewal")
                self._provider.watch()
            else:
                log.info("Existing certificate found; auto-renew disabled")
            self._transition(StartupState.WATCHING)
            return self

        log.info(
            "No complete certificate in %s (key=%s, certificate=%s); requesting one",
            self._store.path,
            "present" if key is not None else "absent",
            "present" if cert is not None else "absent",
        )
        self._provider.init()
        self._transition(StartupState.ISSUING)
        return self

    def _transition(self, target: StartupState) -> None:
        allowed = STARTUP_TRANSITIONS[self._state]
        if target not in allowed:
            msg = f"Invalid startup transition {self._state.value!r} -> {target.value!r}"
            raise RuntimeError(msg)
        log.debug("Startup state %s -> %s", self._state.value, target.value)
        self._state = target

    def __repr__(self) -> str:
        return f"<SSLManager state={self._state.value}>"
