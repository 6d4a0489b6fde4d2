"""Error taxonomy shared by the scanner, gateway, orchestrator and CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from macsigner.models import SigningRequest


class MacSignerError(Exception):
    """Base class for all MacSigner failures.

    ``kind`` is a short stable identifier that presentation layers can switch on
    without matching exception types.
    """

    kind = "error"

    def __init__(self, message: str, *, request: SigningRequest | None = None) -> None:
        super().__init__(message)
        self.request = request


class ConfigurationError(MacSignerError):
    """Raised when required settings are missing. Never contacts the network."""

    kind = "configuration"


class AuthError(MacSignerError):
    """Raised when authentication is rejected or the credential expired mid-operation."""

    kind = "auth"


class ArtifactNotFoundError(MacSignerError, FileNotFoundError):
    """Raised when a local path or remote artifact is missing."""

    kind = "not_found"


class ArtifactIOError(MacSignerError, OSError):
    """Raised on filesystem read/write/backup failures."""

    kind = "io"


class TransportError(MacSignerError):
    """Raised when a remote call fails after retries are exhausted."""

    kind = "transport"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        request: SigningRequest | None = None,
    ) -> None:
        super().__init__(message, request=request)
        self.status_code = status_code


class SigningTimeoutError(MacSignerError, TimeoutError):
    """Raised when a signing request does not reach a terminal status in time."""

    kind = "timeout"


class ScanBusyError(MacSignerError):
    """Raised when a scan of the same root is already running."""

    kind = "busy"


class SelectionError(MacSignerError):
    """Raised when the artifacts handed to a sign operation cannot form a request."""

    kind = "selection"


class EmptySelectionError(SelectionError):
    """Raised when a sign operation is started with no selected artifacts."""


class ArtifactInFlightError(SelectionError):
    """Raised when an artifact already belongs to a non-terminal signing request."""


class DuplicateArtifactNameError(SelectionError):
    """Raised when two selected artifacts share a file name.

    Signed files are downloaded by name, so names must be unique per request.
    """


class SettingsIOError(MacSignerError, OSError):
    """Raised when the settings file cannot be read or written."""

    kind = "settings"


class SettingsParseError(MacSignerError):
    """Raised when the settings file exists but cannot be decoded."""

    kind = "settings"
