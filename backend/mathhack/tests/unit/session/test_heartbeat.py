import asyncio

from mathhack.session.heartbeat import HeartbeatMonitor
from mathhack.session.models import Player, SessionRuntime
from mathhack.tests.mocks import MockConnection


def _runtime_with(*connections: MockConnection) -> SessionRuntime:
    runtime = SessionRuntime(session_id=1)
    for index, conn in enumerate(connections):
        runtime.players[conn.connection_id] = Player(connection=conn, session_id=1, player_id=f"p{index}")
    return runtime


class TestHeartbeatMonitor:
    async def test_closes_silent_connection(self):
        monitor = HeartbeatMonitor(timeout_seconds=0.02, check_interval_seconds=0.01)
        conn = MockConnection()
        runtime = _runtime_with(conn)
        monitor.record_connect(conn.connection_id)
        monitor.start_for_session(1, {1: runtime}.get)
        try:
            await asyncio.sleep(0.1)
        finally:
            await monitor.stop_for_session(1)
        assert conn.is_closed
        assert conn.close_reason == "heartbeat_timeout"

    async def test_active_connection_stays_open(self):
        monitor = HeartbeatMonitor(timeout_seconds=0.05, check_interval_seconds=0.01)
        conn = MockConnection()
        runtime = _runtime_with(conn)
        monitor.record_connect(conn.connection_id)
        monitor.start_for_session(1, {1: runtime}.get)
        try:
            for _ in range(10):
                await asyncio.sleep(0.01)
                monitor.record_activity(conn.connection_id)
        finally:
            await monitor.stop_for_session(1)
        assert not conn.is_closed

    async def test_loop_exits_when_session_gone(self):
        monitor = HeartbeatMonitor(timeout_seconds=1, check_interval_seconds=0.01)
        monitor.start_for_session(1, lambda _session_id: None)
        await asyncio.sleep(0.05)
        assert not monitor.is_running(1)

    async def test_start_is_idempotent_and_stop_all(self):
        monitor = HeartbeatMonitor(timeout_seconds=1, check_interval_seconds=1)
        runtime = _runtime_with()
        monitor.start_for_session(1, {1: runtime}.get)
        monitor.start_for_session(1, {1: runtime}.get)
        assert monitor.is_running(1)
        await monitor.stop_all()
        assert not monitor.is_running(1)

    def test_activity_ignored_after_disconnect(self):
        monitor = HeartbeatMonitor()
        monitor.record_connect("c1")
        monitor.record_disconnect("c1")
        monitor.record_activity("c1")
        assert "c1" not in monitor._last_seen
