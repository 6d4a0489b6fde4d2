"""Signing orchestration built on application ports.

One :class:`SigningOrchestrator` drives any number of signing requests
through ``authenticate -> submit -> poll -> complete`` while sharing a single
gateway (and so a single bearer credential) between them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from macsigner.app.ports import (
    BackupPort,
    ProgressReporter,
    ProgressSnapshot,
    RemoteState,
    SigningGatewayPort,
    StatusResult,
)
from macsigner.config import Settings
from macsigner.errors import (
    ArtifactInFlightError,
    AuthError,
    ConfigurationError,
    DuplicateArtifactNameError,
    EmptySelectionError,
    MacSignerError,
    ScanBusyError,
    SigningTimeoutError,
    TransportError,
)
from macsigner.models import Artifact, RequestState, SigningRequest, SigningStatus
from macsigner.scan import scan_directory
from macsigner.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

Scanner = Callable[..., list[Artifact]]


@dataclass(slots=True)
class _RequestHandle:
    """Book-keeping for one request owned by the orchestrator."""

    request: SigningRequest
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    submitted_at: float | None = None


class SigningOrchestrator:
    """Drive signing requests end-to-end.

    At most ``settings.max_concurrent_signing_requests`` requests hold a slot
    (authenticating, submitting or polling) at any time; further requests
    wait for a slot instead of being rejected. Completion (download and
    replace) runs after the slot is released.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        gateway: SigningGatewayPort,
        backup: BackupPort,
        reporter: ProgressReporter | None = None,
        clock: Clock | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
        scanner: Scanner = scan_directory,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._backup = backup
        self._reporter = reporter
        self._clock = clock or SystemClock()
        self._poll_interval = (
            poll_interval if poll_interval is not None else settings.poll_interval_seconds
        )
        self._timeout = timeout if timeout is not None else settings.signing_timeout_seconds
        self._scanner = scanner

        self._slots = asyncio.Semaphore(settings.max_concurrent_signing_requests)
        self._requests: dict[str, _RequestHandle] = {}
        self._scans_in_flight: set[Path] = set()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> SigningRequest | None:
        handle = self._requests.get(request_id)
        return handle.request if handle else None

    def active_requests(self) -> list[SigningRequest]:
        """Requests that have not reached a terminal state, oldest first."""
        return [
            handle.request
            for handle in self._requests.values()
            if not handle.request.is_terminal
        ]

    # ------------------------------------------------------------------
    # Scan
    # ------------------------------------------------------------------

    async def scan(
        self,
        root: Path,
        *,
        recursive: bool = True,
        show_hidden: bool | None = None,
    ) -> list[Artifact]:
        """Scan ``root`` off the event loop.

        Raises:
            ScanBusyError: If a scan of the same root is already running
            ArtifactNotFoundError: If ``root`` does not exist
        """
        key = Path(root).expanduser().resolve()
        if key in self._scans_in_flight:
            raise ScanBusyError(f"A scan of {key} is already in progress")

        hidden = self._settings.show_hidden_files if show_hidden is None else show_hidden
        self._scans_in_flight.add(key)
        try:
            artifacts = await asyncio.to_thread(
                self._scanner,
                key,
                recursive=recursive,
                show_hidden=hidden,
                auto_select=self._settings.auto_select_signable_files,
            )
        finally:
            self._scans_in_flight.discard(key)

        logger.info("Found %d signable files in %s", len(artifacts), key)
        return artifacts

    # ------------------------------------------------------------------
    # Sign
    # ------------------------------------------------------------------

    async def sign(self, artifacts: Iterable[Artifact]) -> SigningRequest:
        """Sign the selected artifacts as one request.

        Returns the request once it is terminal. A request the service failed
        or cancelled, or one with per-file failures, is returned rather than
        raised; inspect ``request.state``.

        Raises:
            EmptySelectionError: If no artifact is selected
            ConfigurationError: If identity settings are incomplete
            ArtifactInFlightError: If an artifact belongs to another active request
            DuplicateArtifactNameError: If two selected artifacts share a name
            AuthError: If authentication or submission is rejected
            TransportError: If submission fails after retries
            SigningTimeoutError: If the request is not terminal within the timeout
        """
        selected = [artifact for artifact in artifacts if artifact.selected]
        if not selected:
            raise EmptySelectionError("No files selected for signing")

        if not self._settings.is_configured():
            raise ConfigurationError(
                "Signing service is not configured; missing: "
                + ", ".join(self._settings.missing_fields())
            )

        self._check_selection(selected)

        request = SigningRequest(files=selected, created_at=self._clock.now())
        handle = _RequestHandle(request)
        self._requests[request.request_id] = handle
        logger.info("Created signing request %s for %d files", request.request_id, len(selected))
        self._report(request, "Signing request created")

        try:
            return await self._run(handle)
        except asyncio.CancelledError:
            self._abandon(handle)
            raise

    def cancel(self, request_id: str) -> bool:
        """Request cancellation of ``request_id``.

        Before submission the request is cancelled without contacting the
        service. While submitting or polling the running task asks the service
        to cancel without waiting for the next poll tick. Once completion has
        started the request runs to the end and False is returned.
        """
        handle = self._requests.get(request_id)
        if handle is None:
            return False

        request = handle.request
        if request.is_terminal or request.state is RequestState.COMPLETING:
            logger.warning(
                "Cannot cancel request %s in state %s", request_id, request.state.value
            )
            return False

        handle.cancel_event.set()
        if request.state in (
            RequestState.CREATED,
            RequestState.WAITING,
            RequestState.AUTHENTICATING,
        ):
            self._finish_cancelled_before_submit(request)
        logger.info("Cancellation requested for %s", request_id)
        return True

    def _check_selection(self, selected: list[Artifact]) -> None:
        in_flight = {
            artifact.path
            for request in self.active_requests()
            for artifact in request.files
        }
        names: set[str] = set()
        for artifact in selected:
            if artifact.path in in_flight:
                raise ArtifactInFlightError(
                    f"{artifact.path} is already part of an active signing request"
                )
            if artifact.name in names:
                raise DuplicateArtifactNameError(
                    f"More than one selected file is named {artifact.name}"
                )
            names.add(artifact.name)

    async def _run(self, handle: _RequestHandle) -> SigningRequest:
        request = handle.request

        if not await self._acquire_slot(handle):
            return request

        try:
            # A reporter may cancel synchronously before the slot was granted.
            if handle.cancel_event.is_set():
                return request

            await self._authenticate(handle)
            if handle.cancel_event.is_set():
                return request

            await self._submit(handle)
            result = await self._poll_until_terminal(handle)
        finally:
            self._slots.release()

        if result.state is RemoteState.COMPLETED:
            await self._complete(handle)
        return request

    async def _acquire_slot(self, handle: _RequestHandle) -> bool:
        """Wait for a signing slot; False when cancelled while waiting."""
        if not self._slots.locked():
            await self._slots.acquire()
            return True

        request = handle.request
        request.state = RequestState.WAITING
        self._report(request, "Waiting for a free signing slot")

        acquire = asyncio.ensure_future(self._slots.acquire())
        cancelled = asyncio.ensure_future(handle.cancel_event.wait())
        try:
            await asyncio.wait({acquire, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not acquire.done():
                acquire.cancel()
            await asyncio.gather(acquire, return_exceptions=True)

        if acquire.cancelled():
            return False
        if handle.cancel_event.is_set():
            self._slots.release()
            return False
        return True

    async def _authenticate(self, handle: _RequestHandle) -> None:
        request = handle.request
        request.state = RequestState.AUTHENTICATING
        self._report(request, "Authenticating")

        if not self._gateway.needs_refresh():
            return

        if not await self._gateway.authenticate():
            if handle.cancel_event.is_set():
                return
            error = AuthError("Authentication with the signing service failed", request=request)
            self._fail_request(request, error)
            raise error

    async def _submit(self, handle: _RequestHandle) -> None:
        request = handle.request
        request.state = RequestState.SUBMITTING
        handle.submitted_at = self._clock.monotonic()
        self._report(request, "Submitting")

        try:
            request.remote_request_id = await self._gateway.submit(request)
        except (AuthError, TransportError) as exc:
            exc.request = request
            self._fail_request(request, exc)
            raise

        # Artifacts join the request only once the service accepted it.
        for artifact in request.files:
            artifact.enqueue(request.request_id)
        logger.info(
            "Request %s accepted by signing service as %s",
            request.request_id,
            request.remote_request_id,
        )

    async def _poll_until_terminal(self, handle: _RequestHandle) -> StatusResult:
        request = handle.request
        remote_id = request.remote_request_id or request.request_id
        request.state = RequestState.POLLING
        self._report(request, "Submitted")

        started = handle.submitted_at if handle.submitted_at is not None else self._clock.monotonic()
        deadline = started + self._timeout
        while True:
            if handle.cancel_event.is_set():
                return await self._cancel_remote(request, remote_id)
            if self._clock.monotonic() >= deadline:
                raise self._time_out(request)

            try:
                result = await asyncio.wait_for(
                    self._poll_once(remote_id), timeout=deadline - self._clock.monotonic()
                )
            except TimeoutError:
                raise self._time_out(request) from None
            request.remote_status = result.status

            if result.state is RemoteState.COMPLETED:
                return result
            if result.status in (SigningStatus.FAILED, SigningStatus.CANCELLED):
                self._finish_remote_terminal(request, result)
                return result

            for artifact in request.files:
                artifact.mark_progress(result.status)
            self._report(request, f"Remote status: {result.status.value}")

            remaining = deadline - self._clock.monotonic()
            await self._wait_for_next_poll(handle, min(self._poll_interval, max(remaining, 0.0)))

    async def _wait_for_next_poll(self, handle: _RequestHandle, delay: float) -> None:
        """Sleep ``delay`` seconds or until cancellation is requested."""
        sleeper = asyncio.ensure_future(self._clock.sleep(delay))
        cancelled = asyncio.ensure_future(handle.cancel_event.wait())
        try:
            await asyncio.wait({sleeper, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            cancelled.cancel()

    async def _poll_once(self, remote_id: str) -> StatusResult:
        await self._refresh_credential()
        return await self._gateway.poll_status(remote_id)

    async def _refresh_credential(self) -> None:
        if self._gateway.needs_refresh():
            await self._gateway.authenticate()

    async def _cancel_remote(self, request: SigningRequest, remote_id: str) -> StatusResult:
        acknowledged = await self._gateway.cancel(remote_id)
        if not acknowledged:
            logger.warning("Signing service did not acknowledge cancellation of %s", remote_id)

        for artifact in request.files:
            if not artifact.status.is_terminal:
                artifact.cancel()
        request.state = RequestState.CANCELLED
        request.remote_status = SigningStatus.CANCELLED
        request.error_message = "Cancelled by user"
        self._report(request, "Cancelled")
        return StatusResult(state=RemoteState.CANCELLED)

    def _finish_remote_terminal(self, request: SigningRequest, result: StatusResult) -> None:
        if result.status is SigningStatus.CANCELLED:
            for artifact in request.files:
                artifact.cancel()
            request.state = RequestState.CANCELLED
            request.error_message = "Signing request was cancelled by the service"
            self._report(request, "Cancelled by the signing service")
            return

        message = result.error or "Signing request failed on the server"
        for artifact in request.files:
            artifact.fail(message)
        request.state = RequestState.FAILED
        request.error_message = message
        request.error_kind = result.error_kind or "remote"
        logger.error("Signing request %s failed: %s", request.request_id, message)
        self._report(request, message)

    def _time_out(self, request: SigningRequest) -> SigningTimeoutError:
        message = f"Signing timed out after {self._timeout:g} seconds"
        for artifact in request.files:
            if not artifact.status.is_terminal:
                artifact.fail(message)
        error = SigningTimeoutError(message, request=request)
        self._fail_request(request, error)
        return error

    async def _complete(self, handle: _RequestHandle) -> None:
        request = handle.request
        remote_id = request.remote_request_id or request.request_id
        request.state = RequestState.COMPLETING
        self._report(request, "Downloading signed files")

        for artifact in request.files:
            try:
                await self._refresh_credential()
                signed = await self._gateway.download(remote_id, artifact.name)
                if signed is None:
                    artifact.fail("Signed file was not produced by the signing service")
                else:
                    await asyncio.to_thread(self._backup.replace_with_signed, artifact.path, signed)
                    artifact.complete(self._clock.now())
            except (MacSignerError, OSError) as exc:
                logger.error("Failed to finish %s: %s", artifact.path, exc)
                artifact.fail(str(exc))
            self._report(request, f"{artifact.name}: {artifact.status.value}")

        if request.all_succeeded():
            request.state = RequestState.COMPLETED
            logger.info("Signing request %s completed", request.request_id)
            self._report(request, "Completed")
            return

        request.state = RequestState.FAILED
        request.error_kind = "partial"
        request.error_message = (
            f"{request.failed_count} of {request.total_count} files failed to sign"
        )
        logger.error("Signing request %s: %s", request.request_id, request.error_message)
        self._report(request, request.error_message)

    # ------------------------------------------------------------------
    # Terminal helpers
    # ------------------------------------------------------------------

    def _fail_request(self, request: SigningRequest, error: MacSignerError) -> None:
        request.state = RequestState.FAILED
        request.error_kind = error.kind
        request.error_message = str(error)
        logger.error("Signing request %s failed: %s", request.request_id, error)
        self._report(request, str(error))

    def _finish_cancelled_before_submit(self, request: SigningRequest) -> None:
        request.state = RequestState.CANCELLED
        request.error_message = "Cancelled before submission"
        self._report(request, "Cancelled")

    def _abandon(self, handle: _RequestHandle) -> None:
        request = handle.request
        if request.is_terminal:
            return
        for artifact in request.files:
            if artifact.signing_request_id is not None and not artifact.status.is_terminal:
                artifact.cancel()
        request.state = RequestState.CANCELLED
        request.error_message = "Signing task was cancelled"
        self._report(request, "Cancelled")

    def _report(self, request: SigningRequest, message: str | None = None) -> None:
        if self._reporter is None:
            return
        try:
            self._reporter.report(request.request_id, ProgressSnapshot.of(request, message))
        except Exception:  # noqa: BLE001 - reporter failures are logged only
            logger.exception("Progress reporter failed for %s", request.request_id)
