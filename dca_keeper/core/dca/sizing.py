"""
Cloud batch sizing.

Serverless platforms kill a run at a fixed wall-clock limit. These helpers
cap how many orders a run takes on so that even fully sequential execution
ends inside that limit.
"""

SHUTDOWN_BUFFER_MS = 5_000
DEFAULT_INTERVAL_MS = 3_000
# Assumed cost of one quote + swap + settle cycle. A fixed heuristic, not a measurement.
ESTIMATED_MS_PER_ORDER = 8_000


def calculate_safe_batch_size(
    deadline_ms: int,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    estimated_ms_per_order: int = ESTIMATED_MS_PER_ORDER,
) -> int:
    """Orders that fit in ``deadline_ms`` after the shutdown buffer; at least 1."""
    per_order = estimated_ms_per_order + interval_ms
    if per_order <= 0:
        raise ValueError("Per-order cost must be positive")
    return max(1, (deadline_ms - SHUTDOWN_BUFFER_MS) // per_order)


def batch_timeout_for_deadline(deadline_ms: int) -> int:
    """Batch deadline that leaves the shutdown buffer before the platform limit."""
    return max(1, deadline_ms - SHUTDOWN_BUFFER_MS)
