"""Signing gateway port and the record shapes exchanged with the remote authority."""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from macsigner.models import SigningRequest, SigningStatus


class RemoteState(str, Enum):
    """Status strings reported by the signing service.

    Unrecognised strings map to ``UNKNOWN``, which is treated as a failure
    rather than leaving the caller polling forever.
    """

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> RemoteState:
        if raw is None:
            return cls.UNKNOWN
        key = raw.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        return _STATE_ALIASES.get(key, cls.UNKNOWN)

    def to_signing_status(self) -> SigningStatus:
        return _STATE_TO_STATUS[self]


# Separator-free spellings: "in-progress", "InProgress" and "in_progress" all match.
_STATE_ALIASES = {
    "pending": RemoteState.PENDING,
    "queued": RemoteState.PENDING,
    "inprogress": RemoteState.IN_PROGRESS,
    "completed": RemoteState.COMPLETED,
    "failed": RemoteState.FAILED,
    "cancelled": RemoteState.CANCELLED,
    "canceled": RemoteState.CANCELLED,
}


_STATE_TO_STATUS = {
    RemoteState.PENDING: SigningStatus.QUEUED,
    RemoteState.IN_PROGRESS: SigningStatus.IN_PROGRESS,
    RemoteState.COMPLETED: SigningStatus.COMPLETED,
    RemoteState.FAILED: SigningStatus.FAILED,
    RemoteState.CANCELLED: SigningStatus.CANCELLED,
    RemoteState.UNKNOWN: SigningStatus.FAILED,
}


class TokenResponse(BaseModel):
    """OAuth2 client-credentials token response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    expires_in: int = Field(..., ge=0, description="Lifetime in seconds")
    token_type: str = Field("Bearer")


class SubmitFile(BaseModel):
    """One file entry of a sign submission."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName")
    file_path: str = Field(..., alias="filePath")
    file_size: int = Field(..., ge=0, alias="fileSize")


class SubmitPayload(BaseModel):
    """Body of ``POST {endpoint}/sign``."""

    model_config = ConfigDict(populate_by_name=True)

    certificate_profile_name: str = Field(..., alias="certificateProfileName")
    request_id: str = Field(..., alias="requestId")
    files: list[SubmitFile] = Field(default_factory=list)


class SubmitResponse(BaseModel):
    """Response to a sign submission; the service may assign its own id."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    request_id: str | None = Field(None, alias="requestId")


class StatusResponse(BaseModel):
    """Body of ``GET {endpoint}/status/{id}``."""

    model_config = ConfigDict(extra="ignore")

    status: str | None = None
    message: str | None = None


class StatusResult(BaseModel):
    """Interpreted outcome of one status poll.

    ``error`` is set when the poll itself failed or the service returned a
    status string that could not be interpreted; ``status`` is then FAILED.
    ``error_kind`` names the failure class (``"auth"``, ``"transport"``, ...)
    when the poll failed locally and is None for service-reported outcomes.
    """

    model_config = ConfigDict(frozen=True)

    state: RemoteState
    raw_status: str | None = None
    error: str | None = None
    error_kind: str | None = None

    @property
    def status(self) -> SigningStatus:
        return self.state.to_signing_status()

    @classmethod
    def failure(cls, error: str, *, kind: str = "transport") -> StatusResult:
        return cls(state=RemoteState.FAILED, error=error, error_kind=kind)


class SigningGatewayPort(Protocol):
    """Port interface for the remote code-signing authority.

    The gateway owns the bearer credential. Callers only see whether it is
    valid; concurrent ``authenticate`` calls share a single token exchange.

    Side effects: Network calls to the signing service (online).
    """

    @property
    def is_authenticated(self) -> bool:
        """True iff a credential is held and its expiry lies in the future."""
        ...

    def needs_refresh(self) -> bool:
        """True when no credential is held or it expires within the refresh margin."""
        ...

    async def authenticate(self) -> bool:
        """Exchange the configured identity for a credential.

        Returns False (never raises) when configuration is incomplete or the
        exchange is rejected.
        """
        ...

    async def submit(self, request: SigningRequest) -> str:
        """Submit ``request`` and return the remote request id.

        Raises:
            AuthError: If not authenticated or the credential is rejected
            TransportError: If the call fails after retries
        """
        ...

    async def poll_status(self, remote_request_id: str) -> StatusResult:
        """Return the current remote status. Errors map to a FAILED result."""
        ...

    async def download(self, remote_request_id: str, file_name: str) -> bytes | None:
        """Return signed bytes, or None when the service produced no such file.

        Raises:
            AuthError: If the credential is rejected
            TransportError: If the call fails after retries
        """
        ...

    async def cancel(self, remote_request_id: str) -> bool:
        """Ask the service to cancel; returns True when acknowledged."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...
