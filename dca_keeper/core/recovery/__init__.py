"""
Error Recovery Module

Error taxonomy, keeper exceptions and cancellable retry used by the
execution handler and the execution queue.
"""

from .errors import (
    ErrorCategory,
    ErrorClassification,
    ErrorPattern,
    ERROR_PATTERNS,
    BENIGN_RACE_CODES,
    KeeperError,
    ConfigurationError,
    LedgerRpcError,
    PriceFeedNotFoundError,
    BatchTimeoutError,
    AttemptError,
    ShutdownError,
    classify_error_message,
    is_benign_race,
    is_transient,
)
from .strategies import (
    CancellationToken,
    RetryConfig,
    RetryStrategy,
    error_message,
)

__all__ = [
    # Taxonomy
    "ErrorCategory",
    "ErrorClassification",
    "ErrorPattern",
    "ERROR_PATTERNS",
    "BENIGN_RACE_CODES",
    "classify_error_message",
    "is_benign_race",
    "is_transient",
    # Errors
    "KeeperError",
    "ConfigurationError",
    "LedgerRpcError",
    "PriceFeedNotFoundError",
    "BatchTimeoutError",
    "AttemptError",
    "ShutdownError",
    # Strategies
    "CancellationToken",
    "RetryConfig",
    "RetryStrategy",
    "error_message",
]
