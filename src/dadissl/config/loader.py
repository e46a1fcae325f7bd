"""Configuration file loader.

Reads a YAML or JSON file, resolves ``${VAR}`` / ``${VAR:-default}``
references against the environment, and replays every option through a
:class:`ConfigBuilder` so file-based configuration is validated exactly
like programmatic configuration.  All invalid options are reported
together in one :class:`ConfigValidationError`.

Example file::

    environment: staging
    dir: /etc/ssl/example
    createDir: true
    domains: [example.com, www.example.com]
    email: ${ACME_EMAIL}
    autoRenew: true
    bytes: 4096
    logging:
      level: DEBUG
      format: json
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from dadissl.config.builder import ConfigBuilder
from dadissl.config.settings import (
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_DIRECTORY,
    DEFAULT_RENEW_BEFORE_DAYS,
    DEFAULTS,
    LoggingSettings,
    build_logging,
)
from dadissl.errors import ConfigValidationError, InvalidArgument

log = logging.getLogger(__name__)

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_LOG_FORMATS = frozenset({"text", "json"})

_KNOWN_KEYS = frozenset(
    {
        "environment",
        "dir",
        "createDir",
        "provider",
        "domains",
        "email",
        "autoRenew",
        "bytes",
        "renewBeforeDays",
        "checkIntervalSeconds",
        "logging",
    }
)


@dataclass(frozen=True)
class LoadedConfig:
    """Result of :func:`load_config`."""

    builder: ConfigBuilder
    logging: LoggingSettings


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def read_config_file(config_file: str | Path) -> dict[str, Any]:
    """Parse *config_file* (YAML or JSON) and resolve env var references."""
    path = Path(config_file)
    try:
        with path.open(encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        msg = f"Cannot read configuration file '{path}': {exc}"
        raise ConfigValidationError([msg]) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Configuration file '{path}' must contain a mapping at the top level"
        raise ConfigValidationError([msg])

    _resolve_env_vars(data)
    return data


def load_config(
    config_file: str | Path,
    builder: ConfigBuilder | None = None,
) -> LoadedConfig:
    """Load *config_file* into *builder* (a new one by default).

    Raises
    ------
    ConfigValidationError
        Listing every option that failed validation.

    """
    data = read_config_file(config_file)
    return apply_config(data, builder)


def apply_config(
    data: dict[str, Any],
    builder: ConfigBuilder | None = None,
) -> LoadedConfig:
    """Replay the options in *data* through *builder*."""
    builder = builder if builder is not None else ConfigBuilder()
    errors: list[str] = []

    def _apply(label: str, setter, *args: Any) -> None:  # noqa: ANN401
        try:
            setter(*args)
        except InvalidArgument as exc:
            errors.append(f"{label}: {exc.detail}")

    if "environment" in data:
        _apply("environment", builder.set_environment, data["environment"])
    if "dir" in data or "createDir" in data:
        _apply(
            "dir",
            builder.set_certificate_directory,
            data.get("dir", DEFAULT_DIRECTORY),
            data.get("createDir", True),
        )
    if "provider" in data:
        _apply("provider", builder.set_provider, data["provider"])
    if "domains" in data:
        _apply("domains", builder.set_domains, data["domains"])
    if data.get("email") is not None:
        _apply("email", builder.set_registration_email, data["email"])
    if "autoRenew" in data:
        _apply("autoRenew", builder.set_auto_renew, data["autoRenew"])
    if "bytes" in data:
        _apply("bytes", builder.set_key_length, data["bytes"])
    if "renewBeforeDays" in data or "checkIntervalSeconds" in data:
        _apply(
            "renewal",
            builder.set_renewal_window,
            data.get("renewBeforeDays", DEFAULT_RENEW_BEFORE_DAYS),
            data.get("checkIntervalSeconds", DEFAULT_CHECK_INTERVAL_SECONDS),
        )

    logging_data = data.get("logging")
    logging_settings = LoggingSettings()
    if logging_data is not None and not isinstance(logging_data, dict):
        errors.append("logging: must be a mapping")
    else:
        logging_settings = build_logging(logging_data)
        if not isinstance(logging_settings.level, str):
            errors.append(f"logging.level: must be a string, got {logging_settings.level!r}")
        elif logging_settings.level.upper() not in _LOG_LEVELS:
            errors.append(f"logging.level: unknown level {logging_settings.level!r}")
        if not isinstance(logging_settings.format, str):
            errors.append(f"logging.format: must be a string, got {logging_settings.format!r}")
        elif logging_settings.format not in _LOG_FORMATS:
            errors.append(f"logging.format: must be one of {sorted(_LOG_FORMATS)}")

    unknown = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}
    # Field names would bypass validation through add_options.
    errors.extend(
        f"{k}: not a configuration option" for k in sorted(unknown) if k in DEFAULTS
    )
    unknown = {k: v for k, v in unknown.items() if k not in DEFAULTS}
    if unknown:
        log.warning("Unrecognised configuration keys: %s", sorted(unknown))
        builder.add_options(**unknown)

    if errors:
        raise ConfigValidationError(errors)

    return LoadedConfig(builder=builder, logging=logging_settings)
