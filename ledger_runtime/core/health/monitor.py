"""
Endpoint Health Monitor

Tracks candidate RPC endpoints, probes them periodically and picks the
endpoint requests should go to.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from ..recovery.errors import InvalidConfigurationError
from .models import EndpointStatus, HealthMonitorConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

Probe = Callable[[str], Awaitable[Any]]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class EndpointHealthMonitor:
    """
    Health tracking and failover across RPC endpoints.

    Features:
    - Periodic concurrent probes on an asyncio task
    - Consecutive-error and latency based health flags
    - Self-healing once an endpoint answers quickly again
    - Failover in registration order, primary as last resort

    `get_healthy_endpoint()` never raises: with every endpoint down it keeps
    returning the primary so callers still attempt forward progress.

    Usage:
        monitor = EndpointHealthMonitor(
            primary="https://rpc-a.example",
            backups=["https://rpc-b.example"],
            probe=solana_probe,
        )
        monitor.start()
        endpoint = monitor.get_healthy_endpoint()
    """

    def __init__(
        self,
        primary: str,
        backups: Optional[Sequence[str]] = None,
        probe: Optional[Probe] = None,
        config: Optional[HealthMonitorConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        if not primary:
            raise InvalidConfigurationError("A primary endpoint is required", setting="primary")

        self.config = config or HealthMonitorConfig()
        self.primary = primary
        self._probe = probe
        self._clock = clock or _monotonic_ms

        self._health: Dict[str, EndpointStatus] = {}
        for endpoint in [primary, *(backups or [])]:
            if endpoint and endpoint not in self._health:
                self._health[endpoint] = EndpointStatus(endpoint=endpoint)

        self._current_endpoint = primary
        self._task: Optional[asyncio.Task] = None

    @property
    def endpoints(self) -> List[str]:
        return list(self._health.keys())

    @property
    def current_endpoint(self) -> str:
        return self._current_endpoint

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_degraded(self) -> bool:
        """True when no tracked endpoint is healthy."""
        return not any(status.healthy for status in self._health.values())

    def start(self) -> None:
        """Start periodic health checks on the running loop; no-op if already running."""
        if self.is_running:
            return
        if self._probe is None:
            raise InvalidConfigurationError("A probe is required for periodic health checks", setting="probe")

        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            f"[rpc_health] Monitoring {len(self._health)} endpoints "
            f"every {self.config.check_interval_ms}ms"
        )

    def stop(self) -> None:
        """Cancel periodic checks. Safe to call repeatedly."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("[rpc_health] Monitoring stopped")

    async def aclose(self) -> None:
        """Stop and wait for the check task to unwind."""
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        interval_s = self.config.check_interval_ms / 1000
        while True:
            await self.check_all()
            await asyncio.sleep(interval_s)

    def get_healthy_endpoint(self) -> str:
        current = self._health.get(self._current_endpoint)
        if current is not None and current.healthy:
            return self._current_endpoint

        for endpoint, status in self._health.items():
            if status.healthy:
                logger.info(f"[rpc_health] Switching from {self._current_endpoint} to {endpoint}")
                self._current_endpoint = endpoint
                return endpoint

        logger.warning("[rpc_health] No healthy endpoints available, using primary")
        return self.primary

    def report_success(self, endpoint: str, latency_ms: Optional[float] = None) -> None:
        status = self._health.get(endpoint)
        if status is None:
            return

        status.consecutive_errors = 0
        status.last_checked = datetime.now(timezone.utc)

        if latency_ms is None:
            return

        status.latency_ms = latency_ms
        if latency_ms > self.config.latency_threshold_ms:
            if status.healthy:
                logger.warning(
                    f"[rpc_health] Endpoint {endpoint} marked unhealthy due to high latency ({latency_ms:.0f}ms)"
                )
            status.healthy = False
        elif not status.healthy:
            status.healthy = True
            logger.info(f"[rpc_health] Endpoint {endpoint} recovered and marked healthy")

    def report_error(self, endpoint: str, error: Optional[BaseException] = None) -> None:
        status = self._health.get(endpoint)
        if status is None:
            return

        status.error_count += 1
        status.consecutive_errors += 1

        if status.consecutive_errors >= self.config.max_consecutive_errors:
            if status.healthy:
                logger.error(
                    f"[rpc_health] Endpoint {endpoint} marked unhealthy after "
                    f"{status.consecutive_errors} consecutive errors: {error}"
                )
            status.healthy = False
        else:
            logger.debug(f"[rpc_health] Error reported for {endpoint}: {error}")

    async def _check_endpoint(self, probe: Probe, endpoint: str) -> None:
        start = self._clock()
        try:
            await probe(endpoint)
        except Exception as e:
            self.report_error(endpoint, e)
            return
        self.report_success(endpoint, self._clock() - start)

    async def check_all(self) -> None:
        """Probe every endpoint concurrently; one failing probe does not stop the others."""
        probe = self._probe
        if probe is None:
            return
        results = await asyncio.gather(
            *(self._check_endpoint(probe, endpoint) for endpoint in list(self._health)),
            return_exceptions=True,
        )
        for endpoint, result in zip(list(self._health), results):
            if isinstance(result, Exception):
                logger.error(f"[rpc_health] Check failed for {endpoint}: {result}")

    async def track(self, endpoint: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Await `operation` and feed its outcome into the endpoint's health.

        Errors are reported and re-raised unchanged.
        """
        start = self._clock()
        try:
            result = await operation()
        except Exception as e:
            self.report_error(endpoint, e)
            raise
        self.report_success(endpoint, self._clock() - start)
        return result

    def get_health_status(self) -> List[EndpointStatus]:
        return list(self._health.values())

    def get_status(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "current_endpoint": self._current_endpoint,
            "running": self.is_running,
            "degraded": self.is_degraded,
            "endpoints": [status.to_dict() for status in self._health.values()],
        }
