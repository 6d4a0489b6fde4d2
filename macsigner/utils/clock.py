"""Injectable time source for polling, timeouts and backup timestamps."""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Time source used by components that wait or stamp times.

    Tests substitute a virtual clock so poll loops and timeouts run without
    sleeping real seconds.
    """

    def now(self) -> datetime:
        """Return the current wall-clock time (timezone-aware, UTC)."""
        ...

    def monotonic(self) -> float:
        """Return a monotonic reading in seconds for measuring elapsed time."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""
        ...


class SystemClock:
    """Clock backed by the real system time and ``asyncio.sleep``."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
