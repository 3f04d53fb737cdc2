"""Single-shot per-session timers: the game clock and the finished-session release."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Callback type: (session_id) -> Awaitable[None]
TimeoutCallback = Callable[[int], Awaitable[None]]


class TimerManager:
    """Own at most one pending timer per session.

    The timer does not inspect session state. The callback (SessionManager)
    re-checks status under the session lock, so a fire that races an early
    end is harmless.
    """

    def __init__(self, on_timeout: TimeoutCallback) -> None:
        self._timers: dict[int, asyncio.Task[None]] = {}  # session_id -> task
        self._on_timeout = on_timeout

    def has_timer(self, session_id: int) -> bool:
        return session_id in self._timers

    def start(self, session_id: int, seconds: float) -> None:
        """Arm the timer, replacing any timer already running for the session."""
        self.cancel(session_id)
        self._timers[session_id] = asyncio.create_task(self._run_timer(session_id, seconds))

    def cancel(self, session_id: int) -> None:
        task = self._timers.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for session_id in list(self._timers):
            self.cancel(session_id)

    async def _run_timer(self, session_id: int, seconds: float) -> None:
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            return
        # Drop the entry first: the callback may cancel this session's timer
        # and must not cancel itself.
        self._timers.pop(session_id, None)
        try:
            await self._on_timeout(session_id)
        except (RuntimeError, OSError, ConnectionError, ValueError):  # fmt: skip
            logger.exception("timer callback failed for session %s", session_id)
