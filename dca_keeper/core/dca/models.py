"""
DCA Keeper Models

Data models for on-chain DCA accounts, discovery pages and execution results.
Amounts are integers in the token's smallest unit; timestamps are unix
milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple


class TimeScale(IntEnum):
    """Interval unit stored on the DCA account."""
    SECONDS = 0
    MINUTES = 1
    HOURS = 2
    DAYS = 3
    WEEKS = 4
    MONTHS = 5  # 30 days


class JobState(str, Enum):
    """Lifecycle of one queued execution."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


def split_type_params(type_tag: str) -> Optional[Tuple[str, str]]:
    """Extract ``(Input, Output)`` from ``pkg::dca::DCA<Input, Output>``.

    Splits on the top-level comma only, so nested generics survive.
    """
    start = type_tag.find("<")
    if start == -1 or not type_tag.endswith(">"):
        return None

    inner = type_tag[start + 1:-1]
    depth = 0
    for i, ch in enumerate(inner):
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        elif ch == "," and depth == 0:
            left, right = inner[:i].strip(), inner[i + 1:].strip()
            if left and right and "," not in _strip_nested(right):
                return left, right
            return None
    return None


def _strip_nested(value: str) -> str:
    out, depth = [], 0
    for ch in value:
        if ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
        elif depth == 0:
            out.append(ch)
    return "".join(out)


def _fields(value: Any) -> Dict[str, Any]:
    """Move structs arrive either flat or wrapped as ``{"fields": {...}}``."""
    if isinstance(value, dict) and isinstance(value.get("fields"), dict):
        return value["fields"]
    return value if isinstance(value, dict) else {}


@dataclass
class DcaAccount:
    """Point-in-time snapshot of one on-chain DCA order."""
    id: str
    owner: str
    active: bool
    remaining_orders: int
    input_balance: int
    split_allocation: int
    last_time_ms: int
    every: int
    time_scale: int
    input_type: str
    output_type: str
    fee_bps: int
    default_slippage_bps: int
    executor_reward_per_trade: int = 0
    delegatee: Optional[str] = None
    custom_slippage_bps: Optional[int] = None

    @classmethod
    def from_sui_object(cls, obj: Dict[str, Any], order_id: str) -> Optional[DcaAccount]:
        """Parse a ``sui_getObject`` response. Returns None for anything unreadable."""
        try:
            data = obj.get("data") or {}
            content = data.get("content") or {}
            if content.get("dataType") != "moveObject":
                return None

            type_params = split_type_params(content.get("type", ""))
            if type_params is None:
                return None

            fields = content["fields"]
            snapshot = _fields(fields["config_snapshot"])
            trade_params = _fields(fields.get("trade_params"))
            custom_slippage = trade_params.get("slippage_bps") if trade_params else None

            return cls(
                id=order_id,
                owner=fields["owner"],
                delegatee=fields.get("delegatee"),
                active=bool(fields["active"]),
                remaining_orders=int(fields["remaining_orders"]),
                input_balance=int(fields["input_balance"]),
                split_allocation=int(fields["split_allocation"]),
                last_time_ms=int(fields["last_time_ms"]),
                every=int(fields["every"]),
                time_scale=int(fields["time_scale"]),
                input_type=type_params[0],
                output_type=type_params[1],
                executor_reward_per_trade=int(snapshot["executor_reward_per_trade"]),
                custom_slippage_bps=int(custom_slippage) if custom_slippage else None,
                default_slippage_bps=int(snapshot["default_slippage_bps"]),
                fee_bps=int(snapshot["fee_bps"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError):
            return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "delegatee": self.delegatee,
            "active": self.active,
            "remainingOrders": self.remaining_orders,
            "inputBalance": str(self.input_balance),
            "splitAllocation": str(self.split_allocation),
            "lastTimeMs": self.last_time_ms,
            "every": self.every,
            "timeScale": self.time_scale,
            "inputType": self.input_type,
            "outputType": self.output_type,
            "feeBps": self.fee_bps,
            "defaultSlippageBps": self.default_slippage_bps,
            "customSlippageBps": self.custom_slippage_bps,
            "executorRewardPerTrade": str(self.executor_reward_per_trade),
        }


@dataclass
class EligibleOrder(DcaAccount):
    """Account that is due, with its computed schedule position."""
    next_execution_ms: int = 0
    ms_until_eligible: int = 0

    @property
    def overdue_ms(self) -> int:
        return -self.ms_until_eligible

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["nextExecutionMs"] = self.next_execution_ms
        data["msUntilEligible"] = self.ms_until_eligible
        return data


@dataclass
class SwapQuote:
    """One aggregator quote. ``raw`` is handed back to the aggregator for the swap."""
    amount_out: int
    provider: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SwapQuote:
        return cls(
            amount_out=int(data["amountOut"]),
            provider=str(data.get("provider") or "unknown"),
            raw=data,
        )


@dataclass
class QuotedOrder(EligibleOrder):
    """Eligible order with the quote for this single attempt."""
    quote: Optional[SwapQuote] = None
    net_input_amount: int = 0


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one execution attempt."""
    order_id: str
    success: bool
    digest: Optional[str] = None
    error: Optional[str] = None
    reward: Optional[int] = None
    input_amount: Optional[int] = None
    output_amount: Optional[int] = None
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "success": self.success,
            "digest": self.digest,
            "error": self.error,
            "reward": str(self.reward) if self.reward is not None else None,
            "inputAmount": str(self.input_amount) if self.input_amount is not None else None,
            "outputAmount": str(self.output_amount) if self.output_amount is not None else None,
            "provider": self.provider,
        }


@dataclass
class BatchExecutionResult:
    """Summary of one batch run."""
    total: int
    succeeded: int
    failed: int
    results: List[ExecutionResult]
    duration_ms: int
    timed_out: bool = False

    @property
    def processed(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "durationMs": self.duration_ms,
            "timedOut": self.timed_out,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class DiscoveryOptions:
    """Filters and pagination for discovery."""
    limit: int = 50
    cursor: Optional[str] = None
    owner: Optional[str] = None
    input_type: Optional[str] = None
    output_type: Optional[str] = None


@dataclass
class DiscoveryPage:
    """One page of creation events."""
    order_ids: List[str]
    next_cursor: Optional[str] = None


@dataclass
class DiscoveryResult:
    orders: List[EligibleOrder]
    has_more: bool
    next_cursor: Optional[str]
    total_discovered: int
    total_eligible: int


@dataclass
class DiscoveryCounts:
    total_discovered: int = 0
    total_eligible: int = 0
    callback_failures: int = 0


@dataclass
class QueueStats:
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "pending": self.pending,
            "running": self.running,
            "completed": self.completed,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }
