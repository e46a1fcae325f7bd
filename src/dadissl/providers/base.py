"""Abstract base class and optional capabilities for certificate providers.

All providers (built-in and custom) must inherit from :class:`Provider`
and implement :meth:`init` and :meth:`watch`.  Both return immediately:
issuance and renewal run in the background and are owned by the provider.

Providers that need to answer HTTP requests (e.g. HTTP-01 challenges)
additionally satisfy :class:`SupportsMiddleware`.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

    from dadissl.config.settings import SSLSettings

log = logging.getLogger(__name__)


class Provider(abc.ABC):
    """Base class for all certificate provider implementations.

    Parameters
    ----------
    settings:
        The finalised configuration snapshot.

    """

    def __init__(self, settings: SSLSettings) -> None:
        self._settings = settings

    @property
    def settings(self) -> SSLSettings:
        return self._settings

    @abc.abstractmethod
    def init(self) -> None:
        """Begin first-time certificate issuance in the background."""

    @abc.abstractmethod
    def watch(self) -> None:
        """Begin background renewal monitoring."""


@runtime_checkable
class SupportsMiddleware(Protocol):
    """A provider able to hand a request handler to the listening server."""

    def middleware(self) -> Callable[..., Any]:
        """Return the handler registered through ``ListeningServer.use``."""
        ...
