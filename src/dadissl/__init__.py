"""dadissl -- TLS certificate lifecycle for a listening HTTP server.

Build a validated configuration with chained setters, then
:meth:`SSLManager.start` decides whether to request a new certificate or
to watch the existing one for renewal::

    from dadissl import SSLManager
    from dadissl.server import FlaskListeningServer

    manager = (
        SSLManager()
        .set_domains(["example.com"])
        .set_registration_email("ops@example.com")
        .set_listening_server(FlaskListeningServer(app))
        .start()
    )
"""

from dadissl.config import ConfigBuilder, Environment, SSLSettings, load_config
from dadissl.errors import (
    ConfigValidationError,
    InvalidArgument,
    IOFailure,
    PreconditionFailed,
    ProviderError,
    SSLError,
)
from dadissl.manager import SSLManager, StartupState

__version__ = "1.0.0"

__all__ = [
    "ConfigBuilder",
    "ConfigValidationError",
    "Environment",
    "IOFailure",
    "InvalidArgument",
    "PreconditionFailed",
    "ProviderError",
    "SSLError",
    "SSLManager",
    "SSLSettings",
    "StartupState",
    "load_config",
]
