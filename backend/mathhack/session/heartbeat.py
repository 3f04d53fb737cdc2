"""Monitor client liveness via application-level heartbeat."""

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from mathhack.session.models import SessionRuntime

HEARTBEAT_CHECK_INTERVAL = 5  # seconds between heartbeat checks
HEARTBEAT_TIMEOUT = 30  # seconds before disconnecting an idle client

logger = structlog.get_logger()

# Resolve a session runtime by id, or None once the session is gone.
RuntimeResolver = Callable[[int], "SessionRuntime | None"]


class HeartbeatMonitor:
    """Monitor client liveness and disconnect stale connections.

    Tracks the last time each connection sent any frame and runs one
    background loop per session that closes connections silent for longer
    than the timeout window.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = HEARTBEAT_TIMEOUT,
        check_interval_seconds: float = HEARTBEAT_CHECK_INTERVAL,
    ) -> None:
        self._timeout = timeout_seconds
        self._check_interval = check_interval_seconds
        self._last_seen: dict[str, float] = {}  # connection_id -> monotonic timestamp
        self._tasks: dict[int, asyncio.Task[None]] = {}  # session_id -> task

    def record_connect(self, connection_id: str) -> None:
        """Record initial activity timestamp for a new connection."""
        self._last_seen[connection_id] = time.monotonic()

    def record_disconnect(self, connection_id: str) -> None:
        self._last_seen.pop(connection_id, None)

    def record_activity(self, connection_id: str) -> None:
        """Update the activity timestamp for a tracked connection."""
        if connection_id in self._last_seen:
            self._last_seen[connection_id] = time.monotonic()

    def is_running(self, session_id: int) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def start_for_session(self, session_id: int, get_runtime: RuntimeResolver) -> None:
        """Start the heartbeat loop for a session unless one is already running."""
        if self.is_running(session_id):
            return
        self._tasks[session_id] = asyncio.create_task(self._check_loop(session_id, get_runtime))

    async def stop_for_session(self, session_id: int) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def stop_all(self) -> None:
        for session_id in list(self._tasks):
            await self.stop_for_session(session_id)

    async def _check_loop(self, session_id: int, get_runtime: RuntimeResolver) -> None:
        """Periodically close connections in a session that stopped sending frames."""
        while True:
            await asyncio.sleep(self._check_interval)
            runtime = get_runtime(session_id)
            if runtime is None:
                return

            now = time.monotonic()
            for player in list(runtime.players.values()):
                last_seen = self._last_seen.get(player.connection_id)
                if last_seen is not None and now - last_seen > self._timeout:
                    logger.info(
                        "heartbeat timeout, disconnecting",
                        connection_id=player.connection_id,
                        session_id=session_id,
                        player_id=player.player_id,
                    )
                    with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                        await player.connection.close(code=1000, reason="heartbeat_timeout")
                    self._last_seen.pop(player.connection_id, None)
