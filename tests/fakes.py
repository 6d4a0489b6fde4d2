"""In-memory test doubles for the clock and the signing gateway."""

import asyncio
from datetime import UTC, datetime, timedelta

from macsigner.app.ports import RemoteState, StatusResult
from macsigner.models import SigningRequest


class FakeClock:
    """Virtual clock: ``sleep`` advances time instantly and yields once."""

    def __init__(self, start: datetime | None = None) -> None:
        self._start = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)
        self._elapsed = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    def advance(self, seconds: float) -> None:
        self._elapsed += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(max(0.0, seconds))
        await asyncio.sleep(0)


class FakeGateway:
    """In-memory signing gateway recording every call.

    ``statuses`` is consumed one entry per poll; the last entry repeats.
    ``downloads`` maps file names to signed bytes; a name mapped to None is
    reported as not produced. Unlisted names get ``b"signed:" + name``.
    """

    def __init__(
        self,
        *,
        statuses: list[RemoteState] | None = None,
        downloads: dict[str, bytes | None] | None = None,
        auth_ok: bool = True,
    ) -> None:
        self.statuses = list(statuses or [RemoteState.COMPLETED])
        self.downloads = dict(downloads or {})
        self.auth_ok = auth_ok
        self.authenticated = False
        self.authenticate_calls = 0
        self.submitted: list[SigningRequest] = []
        self.poll_calls = 0
        self.download_calls: list[str] = []
        self.cancel_calls: list[str] = []
        self.submit_error: Exception | None = None
        self._lock = asyncio.Lock()

    @property
    def total_calls(self) -> int:
        return (
            self.authenticate_calls
            + len(self.submitted)
            + self.poll_calls
            + len(self.download_calls)
            + len(self.cancel_calls)
        )

    @property
    def is_authenticated(self) -> bool:
        return self.authenticated

    def needs_refresh(self) -> bool:
        return not self.authenticated

    async def authenticate(self) -> bool:
        async with self._lock:
            if self.authenticated:
                return True
            self.authenticate_calls += 1
            await asyncio.sleep(0)
            self.authenticated = self.auth_ok
            return self.auth_ok

    async def submit(self, request: SigningRequest) -> str:
        self.submitted.append(request)
        if self.submit_error is not None:
            raise self.submit_error
        return f"remote-{len(self.submitted)}"

    async def poll_status(self, remote_request_id: str) -> StatusResult:
        index = min(self.poll_calls, len(self.statuses) - 1)
        self.poll_calls += 1
        state = self.statuses[index]
        return StatusResult(state=state, raw_status=state.value)

    async def download(self, remote_request_id: str, file_name: str) -> bytes | None:
        self.download_calls.append(file_name)
        if file_name in self.downloads:
            return self.downloads[file_name]
        return b"signed:" + file_name.encode()

    async def cancel(self, remote_request_id: str) -> bool:
        self.cancel_calls.append(remote_request_id)
        return True

    async def aclose(self) -> None:
        return None
