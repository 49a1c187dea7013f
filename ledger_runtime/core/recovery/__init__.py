"""
Error Recovery Module

Error taxonomy and classification shared by every runtime component.
"""

from .errors import (
    ErrorCategory,
    ErrorContext,
    RecoverableError,
    UnrecoverableError,
    RpcError,
    RpcErrorKind,
    RateLimitedError,
    NetworkError,
    EndpointUnavailableError,
    ConfirmationTimeoutError,
    ConfirmationInterruptedError,
    OperationFailedError,
    InsufficientBalanceError,
    AmountOverflowError,
    InvalidAmountError,
    InvalidConfigurationError,
    classify_error,
    kind_from_message,
    to_runtime_error,
)

__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RecoverableError",
    "UnrecoverableError",
    "RpcError",
    "RpcErrorKind",
    # Recoverable
    "RateLimitedError",
    "NetworkError",
    "EndpointUnavailableError",
    "ConfirmationTimeoutError",
    "ConfirmationInterruptedError",
    # Unrecoverable
    "OperationFailedError",
    "InsufficientBalanceError",
    "AmountOverflowError",
    "InvalidAmountError",
    "InvalidConfigurationError",
    # Classification
    "classify_error",
    "kind_from_message",
    "to_runtime_error",
]
