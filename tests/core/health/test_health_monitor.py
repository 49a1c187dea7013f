"""
Tests for the endpoint health monitor.

Covers failover order, primary fallback, latency based health,
self-healing, concurrent probing and the monitoring lifecycle.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ledger_runtime.core.health import EndpointHealthMonitor, HealthMonitorConfig
from ledger_runtime.core.recovery.errors import InvalidConfigurationError, NetworkError

PRIMARY = "https://rpc-a.example"
BACKUP_1 = "https://rpc-b.example"
BACKUP_2 = "https://rpc-c.example"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_monitor(probe=None, clock=None, **config) -> EndpointHealthMonitor:
    return EndpointHealthMonitor(
        primary=PRIMARY,
        backups=[BACKUP_1, BACKUP_2],
        probe=probe,
        config=HealthMonitorConfig(**config),
        clock=clock,
    )


def fail(monitor: EndpointHealthMonitor, endpoint: str, times: int) -> None:
    for _ in range(times):
        monitor.report_error(endpoint, NetworkError("connection refused", endpoint=endpoint))


def status_of(monitor: EndpointHealthMonitor, endpoint: str):
    return next(s for s in monitor.get_health_status() if s.endpoint == endpoint)


# =============================================================================
# Construction Tests
# =============================================================================

class TestConstruction:
    """Tests for monitor setup."""

    def test_tracks_every_endpoint_healthy(self):
        monitor = make_monitor()

        assert monitor.endpoints == [PRIMARY, BACKUP_1, BACKUP_2]
        assert monitor.current_endpoint == PRIMARY
        assert all(s.healthy for s in monitor.get_health_status())
        assert all(s.error_count == 0 for s in monitor.get_health_status())

    def test_duplicate_backups_are_dropped(self):
        monitor = EndpointHealthMonitor(PRIMARY, backups=[BACKUP_1, PRIMARY, BACKUP_1])

        assert monitor.endpoints == [PRIMARY, BACKUP_1]

    def test_primary_required(self):
        with pytest.raises(InvalidConfigurationError):
            EndpointHealthMonitor("")

    def test_config_validation(self):
        with pytest.raises(InvalidConfigurationError):
            HealthMonitorConfig(max_consecutive_errors=0)
        with pytest.raises(InvalidConfigurationError):
            HealthMonitorConfig(check_interval_ms=0)
        with pytest.raises(InvalidConfigurationError):
            HealthMonitorConfig(latency_threshold_ms=-1)


# =============================================================================
# Failover Tests
# =============================================================================

class TestFailover:
    """Tests for endpoint selection."""

    def test_stays_on_healthy_current(self):
        monitor = make_monitor()

        assert monitor.get_healthy_endpoint() == PRIMARY

    def test_errors_below_threshold_keep_endpoint(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 2)

        assert status_of(monitor, PRIMARY).healthy is True
        assert monitor.get_healthy_endpoint() == PRIMARY

    def test_fails_over_in_registration_order(self):
        monitor = make_monitor()

        fail(monitor, PRIMARY, 3)
        assert monitor.get_healthy_endpoint() == BACKUP_1
        assert monitor.current_endpoint == BACKUP_1

        fail(monitor, BACKUP_1, 3)
        assert monitor.get_healthy_endpoint() == BACKUP_2

    def test_falls_back_to_primary_when_all_unhealthy(self):
        monitor = make_monitor()
        for endpoint in (PRIMARY, BACKUP_1, BACKUP_2):
            fail(monitor, endpoint, 3)

        assert monitor.is_degraded is True
        assert monitor.get_healthy_endpoint() == PRIMARY

    def test_recovered_primary_is_preferred_over_later_backups(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 3)
        assert monitor.get_healthy_endpoint() == BACKUP_1

        fail(monitor, BACKUP_1, 3)
        monitor.report_success(PRIMARY, latency_ms=50)

        assert monitor.get_healthy_endpoint() == PRIMARY


# =============================================================================
# Reporting Tests
# =============================================================================

class TestReporting:
    """Tests for success/error reporting."""

    def test_success_resets_consecutive_but_not_total(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 2)

        monitor.report_success(PRIMARY)

        status = status_of(monitor, PRIMARY)
        assert status.consecutive_errors == 0
        assert status.error_count == 2

    def test_consecutive_never_exceeds_total(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 2)
        monitor.report_success(PRIMARY)
        fail(monitor, PRIMARY, 4)

        status = status_of(monitor, PRIMARY)
        assert status.consecutive_errors == 4
        assert status.error_count == 6
        assert status.consecutive_errors <= status.error_count

    def test_high_latency_marks_unhealthy(self):
        monitor = make_monitor(latency_threshold_ms=1_000)

        monitor.report_success(PRIMARY, latency_ms=1_500)

        status = status_of(monitor, PRIMARY)
        assert status.healthy is False
        assert status.latency_ms == 1_500

    def test_latency_at_threshold_is_acceptable(self):
        monitor = make_monitor(latency_threshold_ms=1_000)

        monitor.report_success(PRIMARY, latency_ms=1_000)

        assert status_of(monitor, PRIMARY).healthy is True

    def test_fast_success_heals_unhealthy_endpoint(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 3)
        assert status_of(monitor, PRIMARY).healthy is False

        monitor.report_success(PRIMARY, latency_ms=120)

        assert status_of(monitor, PRIMARY).healthy is True

    def test_success_without_latency_does_not_heal(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 3)

        monitor.report_success(PRIMARY)

        status = status_of(monitor, PRIMARY)
        assert status.healthy is False
        assert status.consecutive_errors == 0

    def test_unknown_endpoint_is_ignored(self):
        monitor = make_monitor()

        monitor.report_error("https://unknown.example")
        monitor.report_success("https://unknown.example", latency_ms=10)

        assert monitor.endpoints == [PRIMARY, BACKUP_1, BACKUP_2]

    def test_status_snapshot(self):
        monitor = make_monitor()
        fail(monitor, PRIMARY, 1)

        snapshot = monitor.get_status()

        assert snapshot["primary"] == PRIMARY
        assert snapshot["running"] is False
        assert snapshot["degraded"] is False
        assert snapshot["endpoints"][0]["error_count"] == 1


# =============================================================================
# Probe Tests
# =============================================================================

class TestCheckAll:
    """Tests for concurrent probing."""

    @pytest.mark.asyncio
    async def test_failing_check_does_not_block_others(self):
        async def probe(endpoint: str):
            if endpoint == BACKUP_1:
                raise NetworkError("connection refused", endpoint=endpoint)
            return {"blockhash": "abc"}

        monitor = make_monitor(probe=probe, clock=FakeClock())

        await monitor.check_all()

        assert status_of(monitor, BACKUP_1).error_count == 1
        assert status_of(monitor, PRIMARY).error_count == 0
        assert status_of(monitor, PRIMARY).latency_ms == 0
        assert status_of(monitor, BACKUP_2).latency_ms == 0

    @pytest.mark.asyncio
    async def test_slow_check_marks_unhealthy(self):
        clock = FakeClock()

        async def probe(endpoint: str):
            if endpoint == BACKUP_2:
                clock.now += 6_000
            return {}

        monitor = make_monitor(probe=probe, clock=clock, latency_threshold_ms=5_000)

        await monitor.check_all()

        assert status_of(monitor, BACKUP_2).healthy is False
        assert status_of(monitor, BACKUP_2).latency_ms == 6_000
        assert status_of(monitor, PRIMARY).healthy is True

    @pytest.mark.asyncio
    async def test_repeated_failed_checks_trigger_failover(self):
        async def probe(endpoint: str):
            if endpoint == PRIMARY:
                raise NetworkError("connection refused", endpoint=endpoint)

        monitor = make_monitor(probe=probe, clock=FakeClock())

        for _ in range(3):
            await monitor.check_all()

        assert monitor.get_healthy_endpoint() == BACKUP_1


# =============================================================================
# Lifecycle Tests
# =============================================================================

class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_runs_checks_and_is_idempotent(self):
        probe = AsyncMock(return_value={})
        monitor = make_monitor(probe=probe, check_interval_ms=10)

        monitor.start()
        task = monitor._task
        monitor.start()

        assert monitor._task is task
        assert monitor.is_running is True

        await asyncio.sleep(0.05)
        assert probe.await_count >= 3

        await monitor.aclose()
        assert monitor.is_running is False

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        monitor = make_monitor(probe=AsyncMock(return_value={}), check_interval_ms=10)

        monitor.stop()
        monitor.start()
        monitor.stop()
        monitor.stop()

        assert monitor.is_running is False

    @pytest.mark.asyncio
    async def test_stopped_monitor_stops_probing(self):
        probe = AsyncMock(return_value={})
        monitor = make_monitor(probe=probe, check_interval_ms=10)

        monitor.start()
        await asyncio.sleep(0.03)
        await monitor.aclose()
        calls = probe.await_count
        await asyncio.sleep(0.03)

        assert probe.await_count == calls

    @pytest.mark.asyncio
    async def test_start_requires_health_check(self):
        monitor = make_monitor()

        with pytest.raises(InvalidConfigurationError):
            monitor.start()


# =============================================================================
# Tracking Tests
# =============================================================================

class TestTrack:
    """Tests for health-tracked operations."""

    @pytest.mark.asyncio
    async def test_success_reports_latency(self):
        clock = FakeClock()
        monitor = make_monitor(clock=clock)

        async def operation():
            clock.now += 40
            return "ok"

        assert await monitor.track(PRIMARY, operation) == "ok"
        assert status_of(monitor, PRIMARY).latency_ms == 40

    @pytest.mark.asyncio
    async def test_failure_is_reported_and_reraised(self):
        monitor = make_monitor()
        error = NetworkError("connection reset", endpoint=PRIMARY)

        with pytest.raises(NetworkError) as exc_info:
            await monitor.track(PRIMARY, AsyncMock(side_effect=error))

        assert exc_info.value is error
        assert status_of(monitor, PRIMARY).consecutive_errors == 1
