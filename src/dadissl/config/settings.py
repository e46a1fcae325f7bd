"""Typed, frozen dataclasses for the certificate configuration.

This module is the **single source of truth** for default values.  The
builder starts every draft from :data:`DEFAULTS` and freezes it into an
:class:`SSLSettings` snapshot.

Access pattern::

    from dadissl.config import ConfigBuilder

    settings = ConfigBuilder().set_domains(["example.com"]).build()
    print(settings.directory, settings.key_bytes)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dadissl.server import ListeningServer


class Environment(StrEnum):
    STAGING = "staging"
    PRODUCTION = "production"


DEFAULT_DIRECTORY = "~/dadi/ssl/"
DEFAULT_PROVIDER = "letsencrypt"
DEFAULT_KEY_BYTES = 2048
MIN_KEY_BYTES = 512
DEFAULT_RENEW_BEFORE_DAYS = 30
DEFAULT_CHECK_INTERVAL_SECONDS = 12 * 60 * 60

# Draft keys → default values.  Mirrors the SSLSettings field names.
DEFAULTS: dict[str, Any] = {
    "environment": Environment.PRODUCTION,
    "directory": DEFAULT_DIRECTORY,
    "create_directory": True,
    "provider": DEFAULT_PROVIDER,
    "domains": (),
    "email": None,
    "auto_renew": True,
    "key_bytes": DEFAULT_KEY_BYTES,
    "listening_server": None,
    "restart_server": None,
    "renew_before_days": DEFAULT_RENEW_BEFORE_DAYS,
    "check_interval_seconds": DEFAULT_CHECK_INTERVAL_SECONDS,
}


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Log level and output format (``text`` or ``json``)."""

    level: str = "INFO"
    format: str = "text"


def build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "text"),
    )


# ---------------------------------------------------------------------------
# Certificate lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SSLSettings:
    """Finalised certificate configuration handed to providers.

    Attributes
    ----------
    environment:
        Certificate authority environment.
    directory:
        Certificate store root.  ``~`` is expanded by the store, not here.
    create_directory:
        Whether :meth:`SSLManager.start` may create *directory*.
    provider:
        Registered provider name.
    domains:
        Hostnames to certify.
    email:
        Account contact address, or ``None``.
    auto_renew:
        Whether an existing certificate is watched for renewal.
    key_bytes:
        RSA key length of the generated domain key.
    listening_server:
        Server that receives the challenge middleware.
    restart_server:
        Callable the provider invokes after a renewal.
    renew_before_days:
        Renew once the certificate expires within this many days.
    check_interval_seconds:
        Renewal watch polling interval.
    extra:
        Options merged through ``add_options`` without a dedicated field.

    """

    environment: Environment
    directory: str
    create_directory: bool
    provider: str
    domains: tuple[str, ...]
    email: str | None
    auto_renew: bool
    key_bytes: int
    listening_server: ListeningServer | None
    restart_server: Callable[[], Any] | None
    renew_before_days: int
    check_interval_seconds: int
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def build_settings(draft: dict[str, Any]) -> SSLSettings:
    """Freeze a builder draft into an :class:`SSLSettings` snapshot."""
    known = {k: draft.get(k, v) for k, v in DEFAULTS.items()}
    extra = {k: v for k, v in draft.items() if k not in DEFAULTS}
    return SSLSettings(
        environment=Environment(known["environment"]),
        directory=known["directory"],
        create_directory=known["create_directory"],
        provider=known["provider"],
        domains=tuple(known["domains"]),
        email=known["email"],
        auto_renew=known["auto_renew"],
        key_bytes=known["key_bytes"],
        listening_server=known["listening_server"],
        restart_server=known["restart_server"],
        renew_before_days=known["renew_before_days"],
        check_interval_seconds=known["check_interval_seconds"],
        extra=MappingProxyType(dict(extra)),
    )
