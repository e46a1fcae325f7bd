"""Logging subsystem for dadissl.

Public API::

    from dadissl.logging import configure_logging

    configure_logging(LoggingSettings(level="DEBUG", format="json"))
"""

from dadissl.logging.setup import configure_logging

__all__ = ["configure_logging"]
