"""Exception hierarchy for dadissl.

Every error raised by the package derives from :class:`SSLError`, which
carries a human-readable ``detail``.  The concrete subclasses also inherit
from the matching built-in exception so callers can catch them generically
(``ValueError`` for bad input, ``OSError`` for filesystem failures).
"""

from __future__ import annotations


class SSLError(Exception):
    """Base class for all dadissl errors.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.

    """

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class InvalidArgument(SSLError, ValueError):
    """A builder setter received malformed input.

    Raised before anything is merged, so the running configuration keeps
    its previous value for the offending field.
    """


class PreconditionFailed(SSLError):
    """A requirement for :meth:`SSLManager.start` is not met."""


class ProviderError(PreconditionFailed):
    """A certificate provider could not be loaded or initialised."""


class IOFailure(SSLError, OSError):
    """The certificate directory could not be created or written."""


class ConfigValidationError(SSLError):
    """Raised when a configuration file holds one or more invalid options."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")
