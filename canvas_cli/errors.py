"""Error taxonomy for canvas-cli.

Every error derives from ``click.ClickException`` so that the command line
reports it as ``Error: <message>`` on stderr and exits with status 1.
"""

from __future__ import annotations

import click


class CanvasCliError(click.ClickException):
    """Base class for all fatal canvas-cli errors."""


class ConfigurationError(CanvasCliError):
    """The base URL or access token is missing or invalid."""


class PreconditionError(CanvasCliError):
    """A local check failed before any network call was made."""


class TransportError(CanvasCliError):
    """A request failed, returned a non-success status, or returned an unusable body.

    Attributes:
        status_code: HTTP status of the failed response, if one was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    """An explicitly requested course, assignment or file does not exist."""


class ResponseParseError(TransportError):
    """A response body did not have the expected shape."""


class ProtocolError(CanvasCliError):
    """The upload protocol was violated (missing Location header or file id)."""


class FinalizationError(CanvasCliError):
    """The final submission call did not succeed.

    The files have already been uploaded at this point and are left in place.
    """
