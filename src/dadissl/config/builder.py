"""Fluent builder for :class:`SSLSettings`.

Every setter validates its input first, merges it into a private draft
(last write wins per field) and returns the builder so calls chain.
Invalid input raises :class:`InvalidArgument` without touching the draft.
:meth:`ConfigBuilder.build` freezes the draft into an immutable snapshot.

Usage::

    settings = (
        ConfigBuilder()
        .set_domains(["example.com", "www.example.com"])
        .set_registration_email("ops@example.com")
        .set_environment("staging")
        .build()
    )
"""

from __future__ import annotations

import logging
import math
import numbers
import os
import re
from typing import TYPE_CHECKING, Any

from dadissl.config.settings import (
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_DIRECTORY,
    DEFAULT_KEY_BYTES,
    DEFAULT_PROVIDER,
    DEFAULT_RENEW_BEFORE_DAYS,
    DEFAULTS,
    MIN_KEY_BYTES,
    Environment,
    SSLSettings,
    build_settings,
)
from dadissl.errors import InvalidArgument

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from dadissl.server import ListeningServer

log = logging.getLogger(__name__)

# Dotted or quoted local part; bracketed IPv4 literal or dotted hostname.
_EMAIL_RE = re.compile(
    r'(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r"@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])"
    r"|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))",
)

_DOMAIN_CONTAINERS = (list, tuple, set, frozenset)
_REQUIRED_PORT = 80
_RADIX_PREFIXES = ("0x", "0o", "0b")


def is_valid_email(email: str) -> bool:
    """Return ``True`` if *email* matches the accepted address grammar."""
    return _EMAIL_RE.fullmatch(email) is not None


class ConfigBuilder:
    """Accumulate and validate certificate options.

    The builder is meant for sequential, single-threaded use before one
    :meth:`build`.  Snapshots returned by :meth:`build` are independent of
    any later setter calls.
    """

    def __init__(self) -> None:
        self._draft: dict[str, Any] = dict(DEFAULTS)

    # -- merging -------------------------------------------------------------

    def add_options(self, **options: Any) -> ConfigBuilder:  # noqa: ANN401
        """Merge *options* into the draft without validation."""
        self._draft.update(options)
        return self

    @property
    def draft(self) -> dict[str, Any]:
        """A copy of the current draft."""
        return dict(self._draft)

    def build(self) -> SSLSettings:
        """Freeze the current draft into an :class:`SSLSettings`."""
        return build_settings(self._draft)

    # -- setters -------------------------------------------------------------

    def set_domains(self, domains: Iterable[str] = ()) -> ConfigBuilder:
        """Set the hostnames the certificate must cover.

        Parameters
        ----------
        domains:
            A list, tuple or set of hostnames.  An empty container is
            valid and means no domains are constrained yet.

        """
        if not isinstance(domains, _DOMAIN_CONTAINERS):
            msg = "Invalid domains. Must be a list, tuple or set"
            raise InvalidArgument(msg)
        if not all(isinstance(d, str) for d in domains):
            msg = "Invalid domains. Every domain must be a string"
            raise InvalidArgument(msg)
        # dict.fromkeys drops duplicates and keeps first-seen order
        return self.add_options(domains=tuple(dict.fromkeys(domains)))

    def set_certificate_directory(
        self,
        directory: str | os.PathLike[str] = DEFAULT_DIRECTORY,
        create_directory: bool = True,  # noqa: FBT001, FBT002
    ) -> ConfigBuilder:
        """Set where certificates are stored.

        Parameters
        ----------
        directory:
            Certificate store root.  ``~`` is expanded when the directory
            is accessed.
        create_directory:
            Whether :meth:`SSLManager.start` may create *directory*.

        """
        if isinstance(directory, os.PathLike):
            directory = os.fspath(directory)
        if create_directory and not isinstance(directory, str):
            msg = "Invalid directory. Must be a string"
            raise InvalidArgument(msg)
        if isinstance(directory, str) and not directory:
            msg = "Invalid directory. Must not be empty"
            raise InvalidArgument(msg)
        return self.add_options(
            directory=directory,
            create_directory=bool(create_directory),
        )

    def set_environment(
        self,
        environment: str | Environment = Environment.PRODUCTION,
    ) -> ConfigBuilder:
        """Select the certificate authority environment."""
        if environment not in (Environment.STAGING, Environment.PRODUCTION):
            msg = "Invalid environment. Must be staging or production"
            raise InvalidArgument(msg)
        return self.add_options(environment=Environment(environment))

    def set_provider(self, name: str = DEFAULT_PROVIDER) -> ConfigBuilder:
        """Select the certificate provider by name.

        Unknown names resolve to the default provider instead of failing.
        """
        if not isinstance(name, str):
            msg = "Invalid provider. Must be a string"
            raise InvalidArgument(msg)

        # Imported lazily: the registry imports dadissl.config at load time.
        from dadissl.providers.registry import resolve_provider_name  # noqa: PLC0415

        return self.add_options(provider=resolve_provider_name(name))

    def set_registration_email(self, email: str) -> ConfigBuilder:
        """Set the contact address the CA account is registered to."""
        if not isinstance(email, str):
            msg = "Invalid email. Must be a string"
            raise InvalidArgument(msg)
        if not is_valid_email(email):
            msg = f"Invalid email address: {email!r}"
            raise InvalidArgument(msg)
        return self.add_options(email=email)

    def set_auto_renew(self, auto_renew: bool = True) -> ConfigBuilder:  # noqa: FBT001, FBT002
        """Whether an existing certificate is renewed shortly before expiry."""
        if not isinstance(auto_renew, bool):
            msg = "Invalid autoRenew. Must be a boolean"
            raise InvalidArgument(msg)
        return self.add_options(auto_renew=auto_renew)

    def set_key_length(self, key_bytes: float = DEFAULT_KEY_BYTES) -> ConfigBuilder:
        """Set the RSA key length of the generated domain key."""
        if (
            isinstance(key_bytes, bool)
            or not isinstance(key_bytes, numbers.Real)
            or not math.isfinite(key_bytes)
            or key_bytes < MIN_KEY_BYTES
        ):
            msg = f"Invalid bytelength. Must be a number >= {MIN_KEY_BYTES}"
            raise InvalidArgument(msg)
        return self.add_options(key_bytes=int(key_bytes))

    def set_listening_server(self, server: ListeningServer) -> ConfigBuilder:
        """Set the server that answers domain-validation challenges.

        A server exposing a ``port`` must listen on port 80.
        """
        if server is None or not _port_is_acceptable(getattr(server, "port", None)):
            msg = "Invalid listening server. Must be server running on port 80"
            raise InvalidArgument(msg)
        return self.add_options(listening_server=server)

    def set_restart_hook(self, hook: Callable[[], Any] | None) -> ConfigBuilder:
        """Set the callable the provider invokes after renewing."""
        return self.add_options(restart_server=hook)

    def set_renewal_window(
        self,
        renew_before_days: int = DEFAULT_RENEW_BEFORE_DAYS,
        check_interval_seconds: int = DEFAULT_CHECK_INTERVAL_SECONDS,
    ) -> ConfigBuilder:
        """Tune when and how often the renewal watch checks expiry."""
        for label, value in (
            ("renew_before_days", renew_before_days),
            ("check_interval_seconds", check_interval_seconds),
        ):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                msg = f"Invalid {label}. Must be an integer >= 1"
                raise InvalidArgument(msg)
        return self.add_options(
            renew_before_days=renew_before_days,
            check_interval_seconds=check_interval_seconds,
        )


def _port_number(port: Any) -> float:  # noqa: ANN401
    """Coerce *port* like a numeric string: ``"0x50"`` is 80, ``"8_0"`` is not."""
    if isinstance(port, str):
        text = port.strip()
        if "_" in text:
            msg = f"Invalid port: {port!r}"
            raise ValueError(msg)
        if text[:2].lower() in _RADIX_PREFIXES:
            return int(text, 0)
    return float(port)


def _port_is_acceptable(port: Any) -> bool:  # noqa: ANN401
    """An unset or falsy port is accepted; otherwise it must coerce to 80."""
    if not port:
        return True
    try:
        return _port_number(port) == _REQUIRED_PORT
    except (TypeError, ValueError):
        return False
