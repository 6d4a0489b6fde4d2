"""Progress reporters for headless and interactive runs."""

from __future__ import annotations

import logging
from collections.abc import Callable

from macsigner.app.ports.progress import ProgressReporter, ProgressSnapshot

logger = logging.getLogger(__name__)


class NullProgressReporter(ProgressReporter):
    """Reporter that discards every snapshot."""

    def report(self, request_id: str, snapshot: ProgressSnapshot) -> None:
        return None


class LoggingProgressReporter(ProgressReporter):
    """Reporter that writes one log line per transition."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def report(self, request_id: str, snapshot: ProgressSnapshot) -> None:
        self._log.info(
            "Request %s: %s (%d/%d, %.0f%%)%s",
            request_id,
            snapshot.state.value,
            snapshot.processed_count,
            snapshot.total_count,
            snapshot.progress_percent,
            f" - {snapshot.message}" if snapshot.message else "",
        )


class CallbackProgressReporter(ProgressReporter):
    """Reporter that forwards snapshots to a callable.

    The CLI uses this to render status lines; tests use it to record the
    sequence of transitions.
    """

    def __init__(self, callback: Callable[[str, ProgressSnapshot], None]) -> None:
        self._callback = callback

    def report(self, request_id: str, snapshot: ProgressSnapshot) -> None:
        self._callback(request_id, snapshot)
