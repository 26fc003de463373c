"""
DCA Keeper Module

Discovers due DCA orders on the ledger and executes them under
multi-executor races.
"""

from .models import (
    BatchExecutionResult,
    DcaAccount,
    DiscoveryCounts,
    DiscoveryOptions,
    DiscoveryPage,
    DiscoveryResult,
    EligibleOrder,
    ExecutionResult,
    JobState,
    QueueStats,
    QuotedOrder,
    SwapQuote,
    TimeScale,
)
from .eligibility import (
    EligibilityCheck,
    check_eligibility,
    effective_slippage_bps,
    filter_eligible,
    is_eligible,
    sort_by_urgency,
    time_scale_to_ms,
)
from .events import EventBus, KeeperEvent, KeeperEventType
from .discovery import DiscoveryScanner
from .execution import ExecutionHandler
from .queue import ExecutionQueue, QueueOptions, create_queue, execute_batch, execute_batch_for_cloud
from .sizing import calculate_safe_batch_size
from .service import ExecutorService, OrderNotEligibleError

__all__ = [
    # Models
    "BatchExecutionResult",
    "DcaAccount",
    "DiscoveryCounts",
    "DiscoveryOptions",
    "DiscoveryPage",
    "DiscoveryResult",
    "EligibleOrder",
    "ExecutionResult",
    "JobState",
    "QueueStats",
    "QuotedOrder",
    "SwapQuote",
    "TimeScale",
    # Eligibility
    "EligibilityCheck",
    "check_eligibility",
    "effective_slippage_bps",
    "filter_eligible",
    "is_eligible",
    "sort_by_urgency",
    "time_scale_to_ms",
    # Events
    "EventBus",
    "KeeperEvent",
    "KeeperEventType",
    # Components
    "DiscoveryScanner",
    "ExecutionHandler",
    "ExecutionQueue",
    "QueueOptions",
    "create_queue",
    "execute_batch",
    "execute_batch_for_cloud",
    "calculate_safe_batch_size",
    "ExecutorService",
    "OrderNotEligibleError",
]
