"""
Confirmation polling models and types.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ...config import Settings, settings
from ..recovery.errors import InvalidConfigurationError


class ConfirmationState(str, Enum):
    """Status reported by the ledger for a submitted identifier."""
    PENDING = "pending"          # Not yet observed
    SUCCESS = "success"          # Committed
    FAILURE = "failure"          # Rejected/aborted on-chain


class ConfirmationOutcome(str, Enum):
    """Outcome of one polling cycle, or of the whole confirm() call."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass
class ConfirmationStatus:
    """One status answer from the ledger."""
    state: ConfirmationState
    detail: Optional[str] = None
    slot: Optional[int] = None

    @classmethod
    def pending(cls) -> "ConfirmationStatus":
        return cls(state=ConfirmationState.PENDING)


@dataclass
class ConfirmationAttempt:
    """Record of a single poll."""
    attempt_number: int
    identifier: str
    outcome: ConfirmationOutcome = ConfirmationOutcome.PENDING
    next_delay_ms: Optional[float] = None
    error: Optional[str] = None


@dataclass
class ConfirmationResult:
    """Non-exceptional end of a confirm() call: confirmed or cancelled."""
    identifier: str
    outcome: ConfirmationOutcome
    status: Optional[ConfirmationStatus] = None
    attempts: List[ConfirmationAttempt] = field(default_factory=list)

    @property
    def confirmed(self) -> bool:
        return self.outcome == ConfirmationOutcome.CONFIRMED

    @property
    def cancelled(self) -> bool:
        return self.outcome == ConfirmationOutcome.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "outcome": self.outcome.value,
            "slot": self.status.slot if self.status else None,
            "attempts": len(self.attempts),
        }


@dataclass
class RetryOptions:
    """Polling budget for ConfirmationTracker."""
    max_retries: int = 40
    interval_ms: float = 3_000
    backoff_multiplier: float = 1.1
    max_interval_ms: Optional[float] = None   # Uncapped unless set

    def __post_init__(self):
        if self.max_retries < 0:
            raise InvalidConfigurationError(
                f"max_retries must be non-negative, got {self.max_retries}",
                setting="max_retries",
            )
        if self.interval_ms < 0:
            raise InvalidConfigurationError(
                f"interval_ms must be non-negative, got {self.interval_ms}",
                setting="interval_ms",
            )
        if self.backoff_multiplier < 1:
            raise InvalidConfigurationError(
                f"backoff_multiplier must be at least 1, got {self.backoff_multiplier}",
                setting="backoff_multiplier",
            )
        if self.max_interval_ms is not None and self.max_interval_ms < self.interval_ms:
            raise InvalidConfigurationError(
                f"max_interval_ms ({self.max_interval_ms}) is below interval_ms ({self.interval_ms})",
                setting="max_interval_ms",
            )

    def next_delay(self, delay_ms: float) -> float:
        delay_ms *= self.backoff_multiplier
        if self.max_interval_ms is not None:
            delay_ms = min(delay_ms, self.max_interval_ms)
        return delay_ms

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "RetryOptions":
        config = config or settings
        return cls(
            max_retries=config.confirm_max_retries,
            interval_ms=config.confirm_interval_ms,
            backoff_multiplier=config.confirm_backoff_multiplier,
            max_interval_ms=config.confirm_max_interval_ms,
        )
