"""
Tests for the single-order execution handler.
"""

import pytest

from conftest import NOW_MS, PACKAGE_ID, SUI_TYPE, make_sui_object
from dca_keeper.core.dca.eligibility import to_eligible
from dca_keeper.core.dca.execution import (
    DRY_RUN_DIGEST,
    NO_QUOTE_ERROR,
    best_quote,
    net_input_amount,
)
from dca_keeper.core.dca.models import DcaAccount, SwapQuote
from dca_keeper.core.recovery.errors import ALREADY_EXECUTED_PREFIX, ConfigurationError, LedgerRpcError
from dca_keeper.providers.base import TransactionResponse

WBTC_TYPE = "0x027792d9fed7f9844eb4839566001bb6f6cb4804f66aa2da6fe1ee242d896881::coin::COIN"


# ============================================================================
# Fixtures
# ============================================================================

def due_order(ledger, order_id="0xorder", **fields):
    ledger.add_order(order_id, **fields)
    account = DcaAccount.from_sui_object(make_sui_object(order_id, **fields), order_id)
    return to_eligible(account, NOW_MS)


@pytest.fixture
def handler(context):
    return context.handler()


async def quoted_order(handler, ledger, **fields):
    quoted = await handler.get_quote(due_order(ledger, **fields))
    assert quoted is not None
    return quoted


# ============================================================================
# Quote Tests
# ============================================================================

class TestQuotes:
    """Tests for quote selection."""

    def test_net_input_amount(self):
        assert net_input_amount(200_000_000, 30) == 199_400_000
        assert net_input_amount(999, 30) == 997
        assert net_input_amount(1_000, 0) == 1_000

    def test_best_quote(self):
        quotes = [SwapQuote(amount_out=a, provider=p) for a, p in [(100, "a"), (150, "b"), (120, "c")]]
        assert best_quote(quotes).provider == "b"

    def test_best_quote_tie_keeps_first(self):
        quotes = [SwapQuote(amount_out=5, provider="a"), SwapQuote(amount_out=5, provider="b")]
        assert best_quote(quotes).provider == "a"

    def test_best_quote_empty(self):
        assert best_quote([]) is None

    @pytest.mark.asyncio
    async def test_get_quote_uses_net_amount(self, handler, ledger, aggregator):
        quoted = await quoted_order(handler, ledger)

        assert quoted.quote.amount_out == 150
        assert quoted.net_input_amount == 199_400_000
        assert aggregator.quote_calls[0]["amount"] == 199_400_000
        assert quoted.id == "0xorder"

    @pytest.mark.asyncio
    async def test_no_quotes(self, handler, ledger, aggregator):
        aggregator.amounts = []
        assert await handler.get_quote(due_order(ledger)) is None

    @pytest.mark.asyncio
    async def test_quote_error_is_none(self, handler, ledger, aggregator):
        aggregator.quote_error = RuntimeError("aggregator down")
        assert await handler.get_quote(due_order(ledger)) is None

    @pytest.mark.asyncio
    async def test_execute_with_quote_without_quotes(self, handler, ledger, aggregator):
        aggregator.amounts = []
        result = await handler.execute_with_quote(due_order(ledger))

        assert not result.success
        assert result.error == NO_QUOTE_ERROR
        assert ledger.submitted == []


# ============================================================================
# Transaction Tests
# ============================================================================

class TestBuildTransaction:
    """Tests for the trade transaction layout."""

    @pytest.mark.asyncio
    async def test_command_sequence(self, handler, ledger):
        tx = await handler.build_transaction(await quoted_order(handler, ledger))

        assert tx.targets() == [
            f"{PACKAGE_ID}::dca::init_trade",
            "0x2::coin::from_balance",
            "0xagg::router::swap",
            "0x2::coin::value",
            f"{PACKAGE_ID}::dca::resolve_trade",
        ]
        assert [c["$kind"] for c in tx.commands[-2:]] == ["TransferObjects", "TransferObjects"]
        assert tx.sender == handler.signer.address

    @pytest.mark.asyncio
    async def test_init_trade_arguments(self, handler, ledger, settings):
        tx = await handler.build_transaction(await quoted_order(handler, ledger))
        init = tx.move_calls()[0]

        objects = [tx.inputs[arg["Input"]]["Object"] for arg in init["arguments"]]
        assert objects[0] == "0xorder"
        assert objects[1] == settings.clock_object_id
        assert objects[2] == settings.price_feed_registry_id
        # SUI input: the intermediate feed doubles as the input feed.
        assert objects[3] == objects[4] == objects[6]
        assert init["typeArguments"][0] == SUI_TYPE

    @pytest.mark.asyncio
    async def test_reward_claim_and_payouts(self, handler, ledger):
        tx = await handler.build_transaction(await quoted_order(handler, ledger, owner="0xalice"))

        resolve = tx.move_calls()[-1]
        reward_input = tx.inputs[resolve["arguments"][-1]["Input"]]
        assert reward_input == {"$kind": "UnresolvedPure", "value": "25000000", "type": "u64"}

        recipients = [tx.inputs[c["TransferObjects"]["address"]["Input"]]["value"] for c in tx.commands[-2:]]
        assert recipients == ["0xalice", handler.signer.address]

    @pytest.mark.asyncio
    async def test_custom_slippage_reaches_swap(self, handler, ledger, aggregator):
        await handler.build_transaction(await quoted_order(handler, ledger, custom_slippage_bps=250))
        assert aggregator.swap_slippage == [250]


# ============================================================================
# Execution Tests
# ============================================================================

class TestExecute:
    """Tests for execution outcomes."""

    @pytest.mark.asyncio
    async def test_success_reads_completed_event(self, handler, ledger):
        ledger.submit_response = TransactionResponse(
            digest="0xabc",
            events=[{
                "type": f"{PACKAGE_ID}::dca::TradeCompletedEvent",
                "parsedJson": {"executor_reward": "25000000", "amount_out": "149"},
            }],
        )
        result = await handler.execute(await quoted_order(handler, ledger))

        assert result.success
        assert result.digest == "0xabc"
        assert result.reward == 25_000_000
        assert result.output_amount == 149
        assert result.input_amount == 199_400_000
        assert result.provider == "venue1"
        assert ledger.submitted == [b"tx-bytes"]

    @pytest.mark.asyncio
    async def test_lost_race_on_submit_is_success(self, handler, ledger):
        ledger.submit_error = LedgerRpcError("MoveAbort in 0::dca::init_trade: ENotEnoughTimePassed")
        result = await handler.execute(await quoted_order(handler, ledger))

        assert result.success
        assert result.error.startswith(ALREADY_EXECUTED_PREFIX)

    @pytest.mark.asyncio
    async def test_lost_race_in_effects_keeps_digest(self, handler, ledger):
        ledger.submit_response = TransactionResponse(digest="0xlost", error="MoveAbort: EInactive")
        result = await handler.execute(await quoted_order(handler, ledger))

        assert result.success
        assert result.digest == "0xlost"

    @pytest.mark.asyncio
    async def test_onchain_failure_keeps_digest(self, handler, ledger):
        ledger.submit_response = TransactionResponse(digest="0xfail", error="InsufficientGas")
        result = await handler.execute(await quoted_order(handler, ledger))

        assert not result.success
        assert result.error == "InsufficientGas"
        assert result.digest == "0xfail"

    @pytest.mark.asyncio
    async def test_submit_exception_is_failure(self, handler, ledger):
        ledger.submit_error = RuntimeError("InvalidSignature")
        result = await handler.execute(await quoted_order(handler, ledger))

        assert not result.success
        assert result.error == "InvalidSignature"

    @pytest.mark.asyncio
    async def test_no_longer_eligible(self, handler, ledger):
        quoted = await quoted_order(handler, ledger)
        ledger.objects["0xorder"] = make_sui_object("0xorder", active=False)

        result = await handler.execute(quoted)

        assert not result.success
        assert result.error == "No longer eligible: DCA is inactive"
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_deleted_order(self, handler, ledger):
        quoted = await quoted_order(handler, ledger)
        del ledger.objects["0xorder"]

        result = await handler.execute(quoted)
        assert result.error == "No longer eligible: DCA not found or deleted"

    @pytest.mark.asyncio
    async def test_verification_read_failure(self, handler, ledger):
        quoted = await quoted_order(handler, ledger)

        async def broken(object_id):
            raise LedgerRpcError("network unreachable")

        ledger.get_object = broken
        result = await handler.execute(quoted)

        assert not result.success
        assert result.error == "Eligibility verification failed: network unreachable"

    @pytest.mark.asyncio
    async def test_skip_verification(self, handler, ledger):
        quoted = await quoted_order(handler, ledger)
        ledger.objects["0xorder"] = make_sui_object("0xorder", active=False)

        result = await handler.execute(quoted, skip_verification=True)

        assert result.success
        assert ledger.get_object_calls == []

    @pytest.mark.asyncio
    async def test_missing_price_feed(self, handler, ledger):
        quoted = await quoted_order(handler, ledger, output_type=WBTC_TYPE)
        result = await handler.execute(quoted)

        assert not result.success
        assert result.error == f"Missing price feed: {WBTC_TYPE}"
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_missing_signer_raises(self, context, ledger):
        context.signer = None
        handler = context.handler()
        quoted = await quoted_order(handler, ledger)

        with pytest.raises(ConfigurationError):
            await handler.execute(quoted)


class TestDryRun:
    """Tests for dry-run mode."""

    @pytest.fixture
    def dry_handler(self, context, settings):
        context.settings = settings.model_copy(update={"dry_run": True})
        return context.handler()

    @pytest.mark.asyncio
    async def test_dry_run_success(self, dry_handler, ledger):
        ledger.submit_response = TransactionResponse(digest=None)
        result = await dry_handler.execute(await quoted_order(dry_handler, ledger))

        assert result.success
        assert result.digest == DRY_RUN_DIGEST
        assert result.output_amount == 150
        assert ledger.dry_runs == 1
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_dry_run_failure(self, dry_handler, ledger):
        ledger.submit_response = TransactionResponse(error="InsufficientCoinBalance")
        result = await dry_handler.execute(await quoted_order(dry_handler, ledger))

        assert not result.success
        assert result.error == "Dry run failed: InsufficientCoinBalance"
