"""
Executor Service

The two operations every deployment adapter exposes: "discover" (read-only)
and "execute" (one bounded batch). HTTP, CLI and scheduled triggers only add
their own auth and timeout wrapping around these.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import structlog

from .eligibility import check_eligibility, to_eligible
from .models import BatchExecutionResult, DcaAccount, DiscoveryOptions, DiscoveryResult, EligibleOrder, ExecutionResult
from .queue import execute_batch_for_cloud
from .sizing import calculate_safe_batch_size

if TYPE_CHECKING:
    from ...context import ExecutorContext

logger = logging.getLogger(__name__)
_slog = structlog.stdlib.get_logger("dca.service")


class OrderNotEligibleError(Exception):
    """Requested order does not exist or is not due."""

    def __init__(self, order_id: str, reason: Optional[str] = None):
        super().__init__(f"DCA {order_id} not found or not eligible" + (f": {reason}" if reason else ""))
        self.order_id = order_id
        self.reason = reason


class ExecutorService:
    """Facade over discovery and the execution queue for one executor context."""

    def __init__(self, context: "ExecutorContext"):
        self.context = context
        self.settings = context.settings

    async def discover(self, options: Optional[DiscoveryOptions] = None) -> DiscoveryResult:
        return await self.context.scanner().discover(options)

    def batch_limit(self, requested: Optional[int] = None, timeout_ms: Optional[int] = None) -> int:
        """Orders one run may take on: requested or configured, capped by the safe size."""
        timeout_ms = timeout_ms or self.settings.cloud_timeout_ms
        limit = requested or self.settings.max_batch_size
        safe = calculate_safe_batch_size(timeout_ms, self.settings.execution_delay_ms)
        return max(1, min(limit, safe))

    async def execute(
        self,
        limit: Optional[int] = None,
        owner: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> BatchExecutionResult:
        """Discover due orders and execute one cloud-safe batch of them."""
        timeout_ms = timeout_ms or self.settings.cloud_timeout_ms
        batch_limit = self.batch_limit(limit, timeout_ms)
        discovered = await self.discover(DiscoveryOptions(limit=batch_limit, owner=owner))

        if not discovered.orders:
            _slog.info("dca_execute_nothing_due", owner=owner)
            return BatchExecutionResult(total=0, succeeded=0, failed=0, results=[], duration_ms=0)

        handler = self.context.handler()
        return await execute_batch_for_cloud(
            discovered.orders,
            timeout_ms,
            handler.execute_with_quote,
            options=self.context.queue_options(),
            events=self.context.events,
            # The server owns SIGTERM; it stops batches through the context instead.
            handle_signals=False,
            stop=self.context.stop,
        )

    async def load_eligible(self, order_id: str) -> EligibleOrder:
        """Fresh read of one order; OrderNotEligibleError unless it is due."""
        obj = await self.context.ledger.get_object(order_id)
        account = DcaAccount.from_sui_object(obj, order_id)
        if account is None:
            raise OrderNotEligibleError(order_id)

        now = self.context.clock()
        check = check_eligibility(account, now)
        if not check.eligible:
            raise OrderNotEligibleError(order_id, check.reason)
        return to_eligible(account, now)

    async def execute_order(self, order_id: str) -> ExecutionResult:
        order = await self.load_eligible(order_id)
        return await self.context.handler().execute_with_quote(order)
