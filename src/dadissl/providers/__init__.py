"""Pluggable certificate provider system.

Exports the abstract base class, the middleware capability, and the
registry functions.
"""

from dadissl.providers.base import Provider, SupportsMiddleware
from dadissl.providers.registry import (
    DEFAULT_PROVIDER,
    known_providers,
    load_provider,
    register_provider,
    resolve_provider_name,
    unregister_provider,
)

__all__ = [
    "DEFAULT_PROVIDER",
    "Provider",
    "SupportsMiddleware",
    "known_providers",
    "load_provider",
    "register_provider",
    "resolve_provider_name",
    "unregister_provider",
]
