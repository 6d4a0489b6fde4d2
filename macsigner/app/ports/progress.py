"""Progress reporting port and snapshot DTOs."""

from __future__ import annotations

from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from macsigner.models import RequestState, SigningRequest, SigningStatus


class FileProgress(BaseModel):
    """Status of one artifact at the time of a snapshot."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    status: SigningStatus
    error_message: str | None = None


class ProgressSnapshot(BaseModel):
    """Immutable view of a signing request handed to reporters."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    state: RequestState
    status: SigningStatus
    processed_count: int = Field(..., ge=0)
    total_count: int = Field(..., ge=0)
    progress_percent: float = Field(..., ge=0.0, le=100.0)
    message: str | None = None
    error_kind: str | None = None
    files: tuple[FileProgress, ...] = ()

    @classmethod
    def of(cls, request: SigningRequest, message: str | None = None) -> ProgressSnapshot:
        return cls(
            request_id=request.request_id,
            state=request.state,
            status=request.status,
            processed_count=request.processed_count,
            total_count=request.total_count,
            progress_percent=request.progress_percent,
            message=message,
            error_kind=request.error_kind,
            files=tuple(
                FileProgress(
                    name=artifact.name,
                    path=str(artifact.path),
                    status=artifact.status,
                    error_message=artifact.error_message,
                )
                for artifact in request.files
            ),
        )


class ProgressReporter(Protocol):
    """Sink notified at every signing request state transition.

    Callbacks may arrive on any task; presentation layers marshal them to
    their own rendering context.
    """

    def report(self, request_id: str, snapshot: ProgressSnapshot) -> None:
        """Receive a progress snapshot for ``request_id``."""
        ...
