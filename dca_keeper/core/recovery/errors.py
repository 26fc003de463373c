"""
Error Classification

Keeper exceptions and the error taxonomy table.

Ledger and aggregator failures reach the keeper as free-form text, so the
taxonomy is a substring table. Every caller goes through
``classify_error_message`` so the matching can be replaced with structured
error codes in one place.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class ErrorCategory(str, Enum):
    """Categories of errors for execution and retry decisions."""

    BENIGN_RACE = "benign_race"          # Another executor won the race
    ALREADY_HANDLED = "already_handled"  # Handler already reported a terminal race outcome
    TRANSIENT = "transient"              # Network/infra hiccup, retry
    NON_RETRYABLE = "non_retryable"      # Anything else


@dataclass(frozen=True)
class ErrorPattern:
    """One row of the taxonomy table."""

    category: ErrorCategory
    tag: str
    needle: str
    case_sensitive: bool = False

    def matches(self, message: str) -> bool:
        if self.case_sensitive:
            return self.needle in message
        return self.needle.lower() in message.lower()


@dataclass(frozen=True)
class ErrorClassification:
    category: ErrorCategory
    tag: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    @property
    def terminal_success(self) -> bool:
        return self.category in (ErrorCategory.BENIGN_RACE, ErrorCategory.ALREADY_HANDLED)


# Move abort codes raised by the DCA contract when the order is no longer executable.
BENIGN_RACE_CODES: Tuple[str, ...] = (
    "ENotEnoughTimePassed",
    "ENoRemainingOrders",
    "EInactive",
    "EUnfundedAccount",
)

ALREADY_EXECUTED_PREFIX = "Already executed by another executor"
NO_LONGER_ELIGIBLE_PREFIX = "No longer eligible"

# Ordered: first match wins.
ERROR_PATTERNS: Tuple[ErrorPattern, ...] = (
    *(ErrorPattern(ErrorCategory.BENIGN_RACE, code, code, case_sensitive=True) for code in BENIGN_RACE_CODES),
    ErrorPattern(ErrorCategory.ALREADY_HANDLED, "already_executed", "Already executed", case_sensitive=True),
    ErrorPattern(ErrorCategory.ALREADY_HANDLED, "no_longer_eligible", NO_LONGER_ELIGIBLE_PREFIX, case_sensitive=True),
    ErrorPattern(ErrorCategory.TRANSIENT, "timeout", "timeout"),
    ErrorPattern(ErrorCategory.TRANSIENT, "timeout", "timed out"),
    ErrorPattern(ErrorCategory.TRANSIENT, "network", "network"),
    ErrorPattern(ErrorCategory.TRANSIENT, "rate_limit", "rate limit"),
    ErrorPattern(ErrorCategory.TRANSIENT, "fetch_failed", "fetch failed"),
)


def classify_error_message(
    message: Optional[str],
    patterns: Tuple[ErrorPattern, ...] = ERROR_PATTERNS,
) -> ErrorClassification:
    """Map an error string onto the taxonomy."""
    text = message or ""
    for pattern in patterns:
        if pattern.matches(text):
            return ErrorClassification(category=pattern.category, tag=pattern.tag)
    return ErrorClassification(category=ErrorCategory.NON_RETRYABLE)


def transport_error_message(exc: Exception) -> str:
    """Describe an HTTP client failure so the taxonomy reads it as transient.

    httpx reports connection failures as "All connection attempts failed"
    or an OS errno, which carry none of the transient markers.
    """
    detail = str(exc) or type(exc).__name__
    if "timeout" in type(exc).__name__.lower():
        return f"Request timed out: {detail}"
    return f"Network error: {detail}"


def http_status_message(status_code: int) -> str:
    if status_code == 429:
        return "Rate limit exceeded (HTTP 429)"
    if status_code in (502, 503, 504):
        return f"Network error: upstream unavailable (HTTP {status_code})"
    return f"HTTP {status_code}"


def is_benign_race(message: Optional[str]) -> bool:
    """True when the ledger rejected the trade because someone else executed it first."""
    return classify_error_message(message).category == ErrorCategory.BENIGN_RACE


def is_transient(message: Optional[str]) -> bool:
    return classify_error_message(message).retryable


class KeeperError(Exception):
    """Base class for keeper errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(KeeperError):
    """Missing or invalid keeper configuration. Fatal, surfaced to the operator."""


class LedgerRpcError(KeeperError):
    """JSON-RPC error returned by the ledger node."""

    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.method = method


class PriceFeedNotFoundError(KeeperError):
    """No oracle price object is registered for a coin type."""

    def __init__(self, coin_type: str):
        super().__init__(f"Price feed not found for {coin_type}")
        self.coin_type = coin_type


class BatchTimeoutError(KeeperError):
    """Batch deadline reached while partial results were not allowed."""

    def __init__(self, timeout_ms: int, processed: int, total: int):
        super().__init__(f"Batch timed out after {timeout_ms}ms ({processed}/{total} processed)")
        self.timeout_ms = timeout_ms
        self.processed = processed
        self.total = total


class AttemptError(KeeperError):
    """A failed execution attempt carrying its taxonomy classification."""

    def __init__(self, message: str, classification: Optional[ErrorClassification] = None):
        super().__init__(message)
        self.classification = classification or classify_error_message(message)

    @property
    def retryable(self) -> bool:
        return self.classification.retryable


class ShutdownError(KeeperError):
    """Work abandoned because the keeper is shutting down."""

    def __init__(self, message: str = "Execution cancelled (shutdown)"):
        super().__init__(message)
