"""
DCA Execution Handler

Executes one DCA trade as a single atomic transaction:
init_trade -> coin::from_balance -> aggregator swap -> coin::value ->
resolve_trade -> payouts.

Several keepers may race on the same order. The contract is the only
arbiter: whichever transaction lands first wins, and the losers see one of
the benign-race abort codes, which this handler reports as success.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

import structlog

from .eligibility import EligibilityCheck, check_eligibility, effective_slippage_bps, now_ms
from .models import DcaAccount, EligibleOrder, ExecutionResult, QuotedOrder, SwapQuote
from .price_feeds import PriceFeedLookup, PriceInfoSet
from ..execution.tx_builder import DcaTradeBuilder, ProgrammableTransaction
from ..recovery.errors import (
    ALREADY_EXECUTED_PREFIX,
    NO_LONGER_ELIGIBLE_PREFIX,
    ConfigurationError,
    PriceFeedNotFoundError,
    is_benign_race,
)
from ..recovery.strategies import error_message
from ..wallet.signer import Signer
from ...config import Settings
from ...providers.base import LedgerClient, SwapAggregator, TransactionResponse

logger = logging.getLogger(__name__)
_slog = structlog.stdlib.get_logger("dca.execution")

DRY_RUN_DIGEST = "dry-run"
NO_QUOTE_ERROR = "No valid quote available"


def net_input_amount(gross: int, fee_bps: int) -> int:
    """Allocation left for the swap after the protocol fee."""
    return gross - (gross * fee_bps) // 10_000


def best_quote(quotes: List[SwapQuote]) -> Optional[SwapQuote]:
    """Highest output wins; the first of equal quotes is kept."""
    best: Optional[SwapQuote] = None
    for quote in quotes:
        if best is None or quote.amount_out > best.amount_out:
            best = quote
    return best


class ExecutionHandler:
    """
    Verifies, quotes and executes single DCA orders.

    Stateless between calls, so any number of handlers (in this process or
    in other keepers) can work on the same orders safely.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        aggregator: SwapAggregator,
        price_feeds: PriceFeedLookup,
        signer: Optional[Signer],
        settings: Settings,
        clock: Callable[[], int] = now_ms,
    ):
        self.ledger = ledger
        self.aggregator = aggregator
        self.price_feeds = price_feeds
        self.signer = signer
        self.settings = settings
        self.clock = clock
        self.builder = DcaTradeBuilder(
            package_id=settings.dca_package_id,
            clock_id=settings.clock_object_id,
            registry_id=settings.price_feed_registry_id,
            fee_tracker_id=settings.fee_tracker_id,
        )

    def _require_signer(self) -> Signer:
        if self.signer is None:
            raise ConfigurationError("EXECUTOR_PRIVATE_KEY is required to execute orders")
        return self.signer

    async def verify_still_eligible(self, order_id: str) -> EligibilityCheck:
        """Fresh read of the account, re-applying the eligibility rules."""
        obj = await self.ledger.get_object(order_id)
        account = DcaAccount.from_sui_object(obj, order_id)
        if account is None:
            return EligibilityCheck(False, "DCA not found or deleted")
        return check_eligibility(account, self.clock())

    async def get_quote(self, order: EligibleOrder) -> Optional[QuotedOrder]:
        """Best quote for the order's net allocation, or None."""
        net_amount = net_input_amount(order.split_allocation, order.fee_bps)
        try:
            quotes = await self.aggregator.quote(order.input_type, order.output_type, net_amount)
        except Exception as e:
            logger.warning("Quote failed for %s: %s", order.id, e)
            return None

        quote = best_quote(quotes)
        if quote is None:
            return None

        fields = {name: getattr(order, name) for name in EligibleOrder.__dataclass_fields__}
        return QuotedOrder(**fields, quote=quote, net_input_amount=net_amount)

    async def build_transaction(
        self,
        quoted: QuotedOrder,
        price_infos: Optional[PriceInfoSet] = None,
    ) -> ProgrammableTransaction:
        """Assemble the full trade transaction for one quoted order."""
        signer = self._require_signer()
        if price_infos is None:
            price_infos = self.price_feeds.resolve(quoted.input_type, quoted.output_type)
        if quoted.quote is None:
            raise ValueError(f"Order {quoted.id} has no quote")

        type_args = [quoted.input_type, quoted.output_type]
        tx = ProgrammableTransaction(sender=signer.address)

        funds, promise = self.builder.init_trade(
            tx,
            type_args,
            dca_id=quoted.id,
            input_price_info=price_infos.input_price_info,
            output_price_info=price_infos.output_price_info,
            intermediate_price_info=price_infos.intermediate_price_info,
        )
        coin_in = self.builder.coin_from_balance(tx, quoted.input_type, funds)
        coin_out = await self.aggregator.swap(
            tx,
            quoted.quote,
            coin_in,
            signer_address=signer.address,
            slippage_bps=effective_slippage_bps(quoted),
        )
        output_amount = self.builder.coin_value(tx, quoted.output_type, coin_out)
        reward_coin = self.builder.resolve_trade(
            tx,
            type_args,
            dca_id=quoted.id,
            promise=promise,
            output_amount=output_amount,
            executor_reward=self.settings.executor_reward_claim,
        )
        tx.transfer_objects([coin_out], quoted.owner)
        tx.transfer_objects([reward_coin], signer.address)
        return tx

    async def execute(self, quoted: QuotedOrder, skip_verification: bool = False) -> ExecutionResult:
        """
        Execute one quoted order.

        Args:
            quoted: Order with the quote for this attempt
            skip_verification: Skip the fresh eligibility read

        Returns:
            ExecutionResult; failures are reported, never raised, except
            for missing configuration.
        """
        start = time.monotonic()
        _slog.info("dca_execution_started", order_id=quoted.id, dry_run=self.settings.dry_run)

        if not skip_verification:
            try:
                check = await self.verify_still_eligible(quoted.id)
            except Exception as e:
                return self._failed(quoted, f"Eligibility verification failed: {error_message(e)}")
            if not check.eligible:
                return self._failed(quoted, f"{NO_LONGER_ELIGIBLE_PREFIX}: {check.reason}")

        signer = self._require_signer()

        try:
            price_infos = self.price_feeds.resolve(quoted.input_type, quoted.output_type)
        except PriceFeedNotFoundError as e:
            return self._failed(quoted, f"Missing price feed: {e.coin_type}")

        try:
            tx = await self.build_transaction(quoted, price_infos)
            tx_bytes = await self.aggregator.build(tx, signer.address)
            response = await self.ledger.submit_transaction(tx_bytes, signer, dry_run=self.settings.dry_run)
        except ConfigurationError:
            raise
        except Exception as e:
            message = error_message(e)
            if is_benign_race(message):
                return self._race_lost(quoted, message)
            return self._failed(quoted, message)

        result = self._interpret(quoted, response)
        _slog.info(
            "dca_execution_completed",
            order_id=quoted.id,
            success=result.success,
            digest=result.digest,
            error=result.error,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        return result

    async def execute_with_quote(self, order: EligibleOrder) -> ExecutionResult:
        quoted = await self.get_quote(order)
        if quoted is None:
            return self._failed(order, NO_QUOTE_ERROR)
        return await self.execute(quoted)

    def _interpret(self, quoted: QuotedOrder, response: TransactionResponse) -> ExecutionResult:
        quote = quoted.quote

        if self.settings.dry_run:
            if response.error:
                return self._failed(quoted, f"Dry run failed: {response.error}")
            return ExecutionResult(
                order_id=quoted.id,
                success=True,
                digest=DRY_RUN_DIGEST,
                input_amount=quoted.net_input_amount,
                output_amount=quote.amount_out if quote else None,
                provider=quote.provider if quote else None,
            )

        if response.error:
            if is_benign_race(response.error):
                return self._race_lost(quoted, response.error, digest=response.digest)
            return self._failed(quoted, response.error, digest=response.digest)

        reward: Optional[int] = None
        output_amount = quote.amount_out if quote else None
        completed = response.find_event(self.settings.completed_event_marker)
        if completed:
            parsed = completed.get("parsedJson") or {}
            if parsed.get("executor_reward") is not None:
                reward = int(parsed["executor_reward"])
            if parsed.get("amount_out") is not None:
                output_amount = int(parsed["amount_out"])

        return ExecutionResult(
            order_id=quoted.id,
            success=True,
            digest=response.digest,
            reward=reward,
            input_amount=quoted.net_input_amount,
            output_amount=output_amount,
            provider=quote.provider if quote else None,
        )

    @staticmethod
    def _race_lost(order: DcaAccount, message: str, digest: Optional[str] = None) -> ExecutionResult:
        _slog.info("dca_execution_race_lost", order_id=order.id, error=message)
        return ExecutionResult(
            order_id=order.id,
            success=True,
            digest=digest,
            error=f"{ALREADY_EXECUTED_PREFIX}: {message}",
        )

    @staticmethod
    def _failed(order: DcaAccount, message: str, digest: Optional[str] = None) -> ExecutionResult:
        _slog.warning("dca_execution_failed", order_id=order.id, error=message)
        return ExecutionResult(order_id=order.id, success=False, digest=digest, error=message)
