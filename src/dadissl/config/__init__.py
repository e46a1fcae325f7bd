"""Configuration subsystem for dadissl.

Public API::

    from dadissl.config import ConfigBuilder, load_config

    # Programmatic
    settings = ConfigBuilder().set_domains(["example.com"]).build()

    # From a file
    loaded = load_config("ssl.yaml")
    settings = loaded.builder.build()
"""

from dadissl.config.builder import ConfigBuilder, is_valid_email
from dadissl.config.loader import LoadedConfig, apply_config, load_config
from dadissl.config.settings import (
    DEFAULTS,
    Environment,
    LoggingSettings,
    SSLSettings,
    build_settings,
)

__all__ = [
    "DEFAULTS",
    "ConfigBuilder",
    "Environment",
    "LoadedConfig",
    "LoggingSettings",
    "SSLSettings",
    "apply_config",
    "build_settings",
    "is_valid_email",
    "load_config",
]
