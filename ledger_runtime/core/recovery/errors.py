"""
Error Classification

Defines the error types raised by the ledger runtime.
Errors are classified as recoverable (safe to try again) or unrecoverable
(fix the input, or do not resubmit blindly).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"                       # Network/connectivity issues
    RATE_LIMIT = "rate_limit"                 # RPC rate limits
    TIMEOUT = "timeout"                       # Confirmation not observed in time
    ENDPOINT_UNAVAILABLE = "endpoint_unavailable"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    OPERATION_FAILED = "operation_failed"     # Rejected on-chain
    AMOUNT_OVERFLOW = "amount_overflow"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_CONFIGURATION = "invalid_configuration"
    UNKNOWN = "unknown"


class RpcErrorKind(str, Enum):
    """Structured failure kinds reported by a conforming RPC client."""

    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    TIMEOUT = "timeout"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    endpoint: Optional[str] = None
    identifier: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors where trying again is safe.

    These errors are typically transient:
    - Network issues
    - Rate limits
    - Confirmation timeouts (the operation may still land)
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that must not be retried as-is.

    These errors require a change of input or human review:
    - On-chain rejection
    - Insufficient balance
    - Amount overflow or invalid configuration
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class RpcError(Exception):
    """Failure reported by an RPC client, tagged with a structured kind."""

    def __init__(
        self,
        message: str,
        kind: RpcErrorKind = RpcErrorKind.UNKNOWN,
        code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.code = code
        self.endpoint = endpoint


# Specific recoverable errors
class RateLimitedError(RecoverableError):
    """RPC rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float = 60.0,
        endpoint: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            retry_after=retry_after,
            context=ErrorContext(
                category=ErrorCategory.RATE_LIMIT,
                recoverable=True,
                retry_after_seconds=retry_after,
                endpoint=endpoint,
                suggested_action=f"Wait {retry_after}s before retrying",
            ),
        )


class NetworkError(RecoverableError):
    """Network connectivity error."""

    def __init__(
        self,
        message: str = "Network error",
        endpoint: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            retry_after=5.0,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                retry_after_seconds=5.0,
                endpoint=endpoint,
                suggested_action="Retry with exponential backoff",
            ),
        )


class EndpointUnavailableError(RecoverableError):
    """Every tracked endpoint is unhealthy."""

    def __init__(self, message: str = "No healthy RPC endpoint available"):
        super().__init__(
            message,
            category=ErrorCategory.ENDPOINT_UNAVAILABLE,
            retry_after=30.0,
            context=ErrorContext(
                category=ErrorCategory.ENDPOINT_UNAVAILABLE,
                recoverable=True,
                retry_after_seconds=30.0,
                suggested_action="Wait for the next health check or add a backup endpoint",
            ),
        )


class ConfirmationTimeoutError(RecoverableError):
    """
    Confirmation was not observed within the polling budget.

    The operation may still succeed later; `identifier` is kept so the caller
    can re-check or resume polling instead of resubmitting.
    """

    def __init__(
        self,
        identifier: str,
        attempts: int = 0,
        message: Optional[str] = None,
    ):
        self.identifier = identifier
        self.attempts = attempts
        super().__init__(
            message or f"Confirmation of {identifier} not observed after {attempts} polls",
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                identifier=identifier,
                suggested_action="Check the identifier again later; do not resubmit",
                details={"attempts": attempts},
            ),
        )


class ConfirmationInterruptedError(RecoverableError):
    """
    Confirmation polling stopped on an unexpected error after submission.

    The operation was broadcast and its fate is unknown. The original error
    is chained as `__cause__`.
    """

    def __init__(self, identifier: str, reason: Optional[str] = None):
        self.identifier = identifier
        self.reason = reason
        super().__init__(
            f"Confirmation of {identifier} interrupted: {reason or 'unknown error'}",
            category=ErrorCategory.UNKNOWN,
            context=ErrorContext(
                category=ErrorCategory.UNKNOWN,
                recoverable=True,
                identifier=identifier,
                suggested_action="Check the identifier again later; do not resubmit",
                details={"reason": reason} if reason else {},
            ),
        )


# Specific unrecoverable errors
class OperationFailedError(UnrecoverableError):
    """Submitted operation was rejected on-chain."""

    def __init__(
        self,
        identifier: str,
        reason: Optional[str] = None,
    ):
        self.identifier = identifier
        self.reason = reason
        super().__init__(
            f"Operation {identifier} failed: {reason or 'rejected'}",
            category=ErrorCategory.OPERATION_FAILED,
            context=ErrorContext(
                category=ErrorCategory.OPERATION_FAILED,
                recoverable=False,
                identifier=identifier,
                suggested_action="Review transaction parameters before resubmitting",
                details={"reason": reason} if reason else {},
            ),
        )


class InsufficientBalanceError(UnrecoverableError):
    """Account balance does not cover the operation."""

    def __init__(
        self,
        message: str = "Insufficient balance",
        required: Optional[int] = None,
        available: Optional[int] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.INSUFFICIENT_BALANCE,
            context=ErrorContext(
                category=ErrorCategory.INSUFFICIENT_BALANCE,
                recoverable=False,
                suggested_action="Add funds or reduce the amount",
                details={"required": required, "available": available},
            ),
        )


class AmountOverflowError(UnrecoverableError):
    """An amount computation would leave the unsigned 64-bit range."""

    def __init__(self, message: str = "Amount exceeds u64 limit", value: Optional[int] = None):
        super().__init__(
            message,
            category=ErrorCategory.AMOUNT_OVERFLOW,
            context=ErrorContext(
                category=ErrorCategory.AMOUNT_OVERFLOW,
                recoverable=False,
                suggested_action="Reduce the amount or the exchange rate",
                details={"value": str(value)} if value is not None else {},
            ),
        )


class InvalidAmountError(UnrecoverableError):
    """Amount input could not be parsed or is out of range."""

    def __init__(self, message: str = "Invalid amount", value: Any = None):
        super().__init__(
            message,
            category=ErrorCategory.INVALID_AMOUNT,
            context=ErrorContext(
                category=ErrorCategory.INVALID_AMOUNT,
                recoverable=False,
                suggested_action="Enter a non-negative decimal amount",
                details={"value": str(value)} if value is not None else {},
            ),
        )


class InvalidConfigurationError(UnrecoverableError):
    """Malformed rate, delay, decimal count or other setting."""

    def __init__(self, message: str = "Invalid configuration", setting: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.INVALID_CONFIGURATION,
            context=ErrorContext(
                category=ErrorCategory.INVALID_CONFIGURATION,
                recoverable=False,
                suggested_action="Fix the configuration value",
                details={"setting": setting} if setting else {},
            ),
        )


_KIND_CONTEXTS: Dict[RpcErrorKind, ErrorContext] = {
    RpcErrorKind.RATE_LIMITED: ErrorContext(
        category=ErrorCategory.RATE_LIMIT,
        recoverable=True,
        retry_after_seconds=60.0,
        suggested_action="Wait before retrying",
    ),
    RpcErrorKind.NETWORK: ErrorContext(
        category=ErrorCategory.NETWORK,
        recoverable=True,
        retry_after_seconds=5.0,
        suggested_action="Check network connectivity",
    ),
    RpcErrorKind.TIMEOUT: ErrorContext(
        category=ErrorCategory.NETWORK,
        recoverable=True,
        retry_after_seconds=10.0,
        suggested_action="Retry with longer timeout",
    ),
    RpcErrorKind.INSUFFICIENT_BALANCE: ErrorContext(
        category=ErrorCategory.INSUFFICIENT_BALANCE,
        recoverable=False,
        suggested_action="Add funds or reduce the amount",
    ),
    RpcErrorKind.REJECTED: ErrorContext(
        category=ErrorCategory.OPERATION_FAILED,
        recoverable=False,
        suggested_action="Review transaction parameters",
    ),
}


def kind_from_message(message: str) -> RpcErrorKind:
    """
    Guess an RpcErrorKind from free-form error text.

    Only for third-party clients that do not report a structured kind;
    provider wording varies, so prefer RpcError.kind wherever it is set.
    """
    text = message.lower()

    if any(p in text for p in ("429", "rate limit", "too many requests", "throttl")):
        return RpcErrorKind.RATE_LIMITED

    if "insufficient" in text and ("balance" in text or "funds" in text or "lamports" in text):
        return RpcErrorKind.INSUFFICIENT_BALANCE

    if any(p in text for p in ("timeout", "timed out", "deadline")):
        return RpcErrorKind.TIMEOUT

    if any(p in text for p in ("connection", "network", "unreachable", "refused", "dns", "socket", "ssl")):
        return RpcErrorKind.NETWORK

    if "simulation failed" in text or ("transaction" in text and "failed" in text):
        return RpcErrorKind.REJECTED

    return RpcErrorKind.UNKNOWN


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already-typed errors keep their context; RpcError is mapped by its
    structured kind; anything else falls back to message matching.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    if isinstance(error, RpcError):
        kind = error.kind
        if kind == RpcErrorKind.UNKNOWN:
            kind = kind_from_message(error.message)
        endpoint = error.endpoint
    else:
        kind = kind_from_message(str(error))
        endpoint = None

    template = _KIND_CONTEXTS.get(kind)
    if template is None:
        # Unknown but recoverable; the caller decides whether to resubmit
        return ErrorContext(
            category=ErrorCategory.UNKNOWN,
            recoverable=True,
            endpoint=endpoint,
            suggested_action="Retry operation",
        )

    return ErrorContext(
        category=template.category,
        recoverable=template.recoverable,
        retry_after_seconds=template.retry_after_seconds,
        suggested_action=template.suggested_action,
        endpoint=endpoint,
    )


def to_runtime_error(error: Exception, endpoint: Optional[str] = None) -> Exception:
    """
    Convert a raw client failure into the runtime's typed error.

    Typed runtime errors pass through unchanged.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error

    context = classify_error(error)
    message = str(error) or type(error).__name__
    endpoint = endpoint or context.endpoint

    if context.category == ErrorCategory.RATE_LIMIT:
        return RateLimitedError(
            message,
            retry_after=context.retry_after_seconds or 60.0,
            endpoint=endpoint,
        )
    if context.category == ErrorCategory.NETWORK:
        return NetworkError(message, endpoint=endpoint)
    if context.category == ErrorCategory.INSUFFICIENT_BALANCE:
        return InsufficientBalanceError(message)
    return error
