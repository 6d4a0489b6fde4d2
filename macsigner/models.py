"""Domain records for artifacts and signing requests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from macsigner.utils.formatting import format_size


class SigningStatus(str, Enum):
    """Per-artifact signing status, also used for remote request status."""

    NOT_SIGNED = "not_signed"
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {SigningStatus.COMPLETED, SigningStatus.FAILED, SigningStatus.CANCELLED}
)


class RequestState(str, Enum):
    """Lifecycle of a signing request inside the orchestrator."""

    CREATED = "created"
    WAITING = "waiting"
    AUTHENTICATING = "authenticating"
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestState.COMPLETED, RequestState.FAILED, RequestState.CANCELLED)


class Artifact(BaseModel):
    """A file under consideration for signing.

    Status fields are mutated only through the transition methods below, which
    keep ``signing_request_id`` set exactly when ``status`` is not
    ``NOT_SIGNED``.
    """

    model_config = ConfigDict(validate_assignment=True)

    path: Path = Field(..., frozen=True, description="Absolute filesystem path")
    size_bytes: int = Field(0, ge=0, description="Size captured at discovery time")
    status: SigningStatus = Field(SigningStatus.NOT_SIGNED)
    selected: bool = Field(True, description="Caller-controlled selection flag")
    signing_request_id: str | None = Field(None)
    signed_at: datetime | None = Field(None)
    error_message: str | None = Field(None)

    @field_validator("path")
    def _validate_path(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ValueError("Artifact.path must be an absolute path")
        return value

    @classmethod
    def from_path(cls, path: Path, *, selected: bool = True) -> Artifact:
        """Build an artifact, capturing its size (0 if the file vanished)."""
        resolved = Path(path).absolute()
        try:
            size = resolved.stat().st_size
        except OSError:
            size = 0
        return cls(path=resolved, size_bytes=size, selected=selected)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()

    @property
    def formatted_size(self) -> str:
        return format_size(self.size_bytes)

    # Transitions -----------------------------------------------------------

    def enqueue(self, request_id: str) -> None:
        self.signed_at = None
        self.error_message = None
        self.signing_request_id = request_id
        self.status = SigningStatus.QUEUED

    def mark_progress(self, status: SigningStatus) -> None:
        """Mirror a non-terminal remote status (queued/in progress)."""
        if status.is_terminal or status is SigningStatus.NOT_SIGNED:
            raise ValueError(f"Not a progress status: {status.value}")
        self._require_request()
        self.status = status

    def complete(self, signed_at: datetime) -> None:
        self._require_request()
        self.error_message = None
        self.signed_at = signed_at
        self.status = SigningStatus.COMPLETED

    def fail(self, message: str) -> None:
        self._require_request()
        self.error_message = message
        self.status = SigningStatus.FAILED

    def cancel(self) -> None:
        self._require_request()
        self.status = SigningStatus.CANCELLED

    def _require_request(self) -> None:
        if self.signing_request_id is None:
            raise ValueError(f"{self.name} is not part of a signing request")


@dataclass(slots=True)
class SigningRequest:
    """A batch of artifacts submitted together.

    ``files`` holds references to caller-owned artifacts; status changes made
    by the orchestrator are visible through both.
    """

    files: list[Artifact] = field(default_factory=list)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state: RequestState = RequestState.CREATED
    remote_request_id: str | None = None
    remote_status: SigningStatus | None = None
    error_message: str | None = None
    error_kind: str | None = None

    @property
    def total_count(self) -> int:
        return len(self.files)

    @property
    def processed_count(self) -> int:
        return sum(
            1
            for artifact in self.files
            if artifact.status in (SigningStatus.COMPLETED, SigningStatus.FAILED)
        )

    @property
    def completed_count(self) -> int:
        return sum(1 for artifact in self.files if artifact.status is SigningStatus.COMPLETED)

    @property
    def failed_count(self) -> int:
        return sum(1 for artifact in self.files if artifact.status is SigningStatus.FAILED)

    @property
    def progress_percent(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.processed_count / self.total_count * 100

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def status(self) -> SigningStatus:
        """Aggregate status as seen by callers."""
        if self.state is RequestState.COMPLETED:
            return SigningStatus.COMPLETED
        if self.state is RequestState.FAILED:
            return SigningStatus.FAILED
        if self.state is RequestState.CANCELLED:
            return SigningStatus.CANCELLED
        if self.state is RequestState.COMPLETING:
            return SigningStatus.IN_PROGRESS
        if self.state is RequestState.POLLING:
            if self.remote_status in (SigningStatus.QUEUED, SigningStatus.IN_PROGRESS):
                return self.remote_status
            return SigningStatus.QUEUED
        return SigningStatus.NOT_SIGNED

    def all_succeeded(self) -> bool:
        """True when every file was processed and none failed."""
        return self.processed_count == self.total_count and self.failed_count == 0
