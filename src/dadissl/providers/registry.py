"""Certificate provider registry.

Maps provider names to :class:`Provider` classes and instantiates the
configured one.  Supports built-in providers (``letsencrypt``), classes
registered at runtime with :func:`register_provider`, and custom classes
via the ``ext:`` prefix.

Any other name resolves to :data:`DEFAULT_PROVIDER`.  The fallback is
logged so a typo in the provider name is visible.

Usage::

    from dadissl.providers.registry import load_provider

    provider = load_provider(settings)
    provider.init()
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from dadissl.config.settings import DEFAULT_PROVIDER
from dadissl.errors import ProviderError
from dadissl.providers.base import Provider

if TYPE_CHECKING:
    from dadissl.config.settings import SSLSettings

log = logging.getLogger(__name__)

# Maps config string → (module_path, class_name)
_BUILTIN_PROVIDERS: dict[str, tuple[str, str]] = {
    "letsencrypt": ("dadissl.providers.letsencrypt", "LetsEncryptProvider"),
}

_EXT_PREFIX = "ext:"

_registered: dict[str, type[Provider]] = {}


def register_provider(name: str, cls: type[Provider]) -> None:
    """Make *cls* selectable under *name*.

    Raises
    ------
    ProviderError
        If *cls* is not a complete :class:`Provider` subclass or *name*
        shadows a built-in provider.

    """
    if name in _BUILTIN_PROVIDERS or name.startswith(_EXT_PREFIX):
        msg = f"Provider name '{name}' is reserved"
        raise ProviderError(msg)
    _validate_class(cls, name)
    _registered[name] = cls
    log.debug("Registered provider: %s", name)


def unregister_provider(name: str) -> None:
    """Forget a provider added with :func:`register_provider`."""
    _registered.pop(name, None)


def known_providers() -> list[str]:
    """Names that resolve to themselves."""
    return sorted({*_BUILTIN_PROVIDERS, *_registered})


def resolve_provider_name(name: str) -> str:
    """Return the provider name that *name* selects.

    Built-in, registered and ``ext:`` names are returned unchanged; any
    other name falls back to :data:`DEFAULT_PROVIDER`.
    """
    if name in _BUILTIN_PROVIDERS or name in _registered or name.startswith(_EXT_PREFIX):
        return name
    log.warning(
        "Unknown provider '%s'; falling back to '%s' (known: %s)",
        name,
        DEFAULT_PROVIDER,
        known_providers(),
    )
    return DEFAULT_PROVIDER


def load_provider(settings: SSLSettings) -> Provider:
    """Instantiate the provider selected by *settings*.

    Raises
    ------
    ProviderError
        If the provider class cannot be loaded or is invalid.

    """
    name = resolve_provider_name(settings.provider)

    if name in _registered:
        cls = _registered[name]
    elif name.startswith(_EXT_PREFIX):
        cls = _import_class(name[len(_EXT_PREFIX) :], label=name)
    else:
        mod_path, cls_name = _BUILTIN_PROVIDERS[name]
        cls = _import_class(f"{mod_path}.{cls_name}", label=name)

    _validate_class(cls, name)
    provider = cls(settings)
    log.info("Loaded certificate provider: %s", name)
    return provider


def _import_class(fqn: str, *, label: str) -> type:
    """Import ``package.module.ClassName``."""
    module_path, _, cls_name = fqn.rpartition(".")
    if not module_path:
        msg = (
            f"Invalid provider '{label}': must be fully qualified "
            "(e.g. 'ext:mypackage.module.ClassName')"
        )
        raise ProviderError(msg)

    try:
        module = importlib.import_module(module_path)
        return getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load provider '{label}': {exc}"
        raise ProviderError(msg) from exc


def _validate_class(cls: type, label: str) -> None:
    """Verify that a provider class has the required methods."""
    if not (isinstance(cls, type) and issubclass(cls, Provider)):
        msg = f"Provider '{label}' is not a subclass of Provider"
        raise ProviderError(msg)

    for method_name in ("init", "watch"):
        method = getattr(cls, method_name, None)
        if method is None or getattr(method, "__isabstractmethod__", False):
            msg = f"Provider '{label}' does not implement '{method_name}()'"
            raise ProviderError(msg)
