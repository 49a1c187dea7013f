"""
Endpoint health models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ...config import Settings, settings
from ..recovery.errors import InvalidConfigurationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EndpointStatus:
    """Health record for one RPC endpoint."""
    endpoint: str
    healthy: bool = True
    last_checked: datetime = field(default_factory=_utcnow)
    latency_ms: Optional[float] = None
    error_count: int = 0           # Monotonic
    consecutive_errors: int = 0    # Reset on success

    def to_dict(self) -> Dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "healthy": self.healthy,
            "last_checked": self.last_checked.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "consecutive_errors": self.consecutive_errors,
        }


@dataclass
class HealthMonitorConfig:
    """Tuning for EndpointHealthMonitor."""
    check_interval_ms: float = 30_000
    max_consecutive_errors: int = 3
    latency_threshold_ms: float = 5_000

    def __post_init__(self):
        if self.check_interval_ms <= 0:
            raise InvalidConfigurationError(
                f"check_interval_ms must be positive, got {self.check_interval_ms}",
                setting="check_interval_ms",
            )
        if self.max_consecutive_errors < 1:
            raise InvalidConfigurationError(
                f"max_consecutive_errors must be at least 1, got {self.max_consecutive_errors}",
                setting="max_consecutive_errors",
            )
        if self.latency_threshold_ms <= 0:
            raise InvalidConfigurationError(
                f"latency_threshold_ms must be positive, got {self.latency_threshold_ms}",
                setting="latency_threshold_ms",
            )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "HealthMonitorConfig":
        config = config or settings
        return cls(
            check_interval_ms=config.health_check_interval_ms,
            max_consecutive_errors=config.health_max_consecutive_errors,
            latency_threshold_ms=config.health_latency_threshold_ms,
        )
