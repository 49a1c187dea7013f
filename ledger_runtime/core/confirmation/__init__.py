"""
Transaction confirmation polling.

Usage:
    tracker = ConfirmationTracker(get_status=client.get_confirmation_status)
    result = await tracker.confirm(signature)
"""

from .models import (
    ConfirmationAttempt,
    ConfirmationOutcome,
    ConfirmationResult,
    ConfirmationState,
    ConfirmationStatus,
    RetryOptions,
)
from .tracker import ConfirmationTracker, StatusQuery

__all__ = [
    "ConfirmationTracker",
    "StatusQuery",
    "ConfirmationAttempt",
    "ConfirmationOutcome",
    "ConfirmationResult",
    "ConfirmationState",
    "ConfirmationStatus",
    "RetryOptions",
]
