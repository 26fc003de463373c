"""
Shared fixtures: an in-memory ledger with a paginated event log, a scripted
swap aggregator and keeper settings that never read the environment.
"""

from typing import Any, Dict, List, Optional

import pytest

from dca_keeper.config import Settings
from dca_keeper.context import ExecutorContext
from dca_keeper.core.dca.models import SwapQuote
from dca_keeper.core.execution.tx_builder import Argument, ProgrammableTransaction
from dca_keeper.core.wallet.signer import Signer
from dca_keeper.providers.base import LedgerClient, SwapAggregator, TransactionResponse

NOW_MS = 1_700_000_000_000
PACKAGE_ID = "0x19852a2e3d8caf1fbc7452d5290d6f71b3df573b7ab3252183756491c45047b4"
SUI_TYPE = "0x2::sui::SUI"
USDC_TYPE = "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC"


def make_sui_object(
    order_id: str,
    owner: str = "0xowner",
    active: bool = True,
    remaining_orders: int = 5,
    input_balance: int = 1_000_000_000,
    split_allocation: int = 200_000_000,
    last_time_ms: int = NOW_MS - 120_000,
    every: int = 1,
    time_scale: int = 1,
    input_type: str = SUI_TYPE,
    output_type: str = USDC_TYPE,
    fee_bps: int = 30,
    default_slippage_bps: int = 100,
    custom_slippage_bps: Optional[int] = None,
) -> Dict[str, Any]:
    """``sui_getObject`` response for one DCA account (due two minutes ago by default)."""
    trade_params = None
    if custom_slippage_bps is not None:
        trade_params = {"type": f"{PACKAGE_ID}::dca::TradeParams", "fields": {"slippage_bps": str(custom_slippage_bps)}}
    return {
        "data": {
            "objectId": order_id,
            "content": {
                "dataType": "moveObject",
                "type": f"{PACKAGE_ID}::dca::DCA<{input_type}, {output_type}>",
                "fields": {
                    "owner": owner,
                    "delegatee": "0xdelegatee",
                    "active": active,
                    "remaining_orders": str(remaining_orders),
                    "input_balance": str(input_balance),
                    "split_allocation": str(split_allocation),
                    "last_time_ms": str(last_time_ms),
                    "every": str(every),
                    "time_scale": time_scale,
                    "config_snapshot": {
                        "type": f"{PACKAGE_ID}::config::ConfigSnapshot",
                        "fields": {
                            "executor_reward_per_trade": "25000000",
                            "default_slippage_bps": str(default_slippage_bps),
                            "fee_bps": str(fee_bps),
                        },
                    },
                    "trade_params": trade_params,
                },
            },
        }
    }


class FakeLedger(LedgerClient):
    """In-memory ledger. ``events`` is the creation log, newest first."""

    name = "fake-ledger"

    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.submit_response = TransactionResponse(digest="0xdigest")
        self.submit_error: Optional[Exception] = None
        self.query_calls: List[Optional[Dict[str, str]]] = []
        self.multi_get_calls: List[List[str]] = []
        self.get_object_calls: List[str] = []
        self.submitted: List[bytes] = []
        self.dry_runs = 0

    def add_order(self, order_id: str, **fields: Any) -> None:
        """Record a creation event and store the account it points at."""
        seq = len(self.events)
        self.events.append({
            "id": {"txDigest": f"tx{seq:04d}", "eventSeq": "0"},
            "type": f"{PACKAGE_ID}::dca::DCACreatedEvent",
            "parsedJson": {"id": order_id},
        })
        self.objects[order_id] = make_sui_object(order_id, **fields)

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}

    async def query_events(self, event_type, cursor=None, limit=100, descending=True):
        self.query_calls.append(cursor)
        start = 0
        if cursor is not None:
            ids = [e["id"] for e in self.events]
            start = ids.index(cursor) + 1
        page = self.events[start:start + limit]
        return {
            "data": page,
            "nextCursor": page[-1]["id"] if page else None,
            "hasNextPage": start + limit < len(self.events),
        }

    async def get_object(self, object_id):
        self.get_object_calls.append(object_id)
        return self.objects.get(object_id, {"error": {"code": "notExists"}})

    async def multi_get_objects(self, object_ids):
        self.multi_get_calls.append(list(object_ids))
        return [self.objects.get(i, {"error": {"code": "notExists"}}) for i in object_ids]

    async def submit_transaction(self, tx_bytes, signer, dry_run=False):
        if dry_run:
            self.dry_runs += 1
        else:
            self.submitted.append(tx_bytes)
        if self.submit_error is not None:
            raise self.submit_error
        return self.submit_response

    async def get_balance(self, address, coin_type="0x2::sui::SUI"):
        return 10_000_000_000


class FakeAggregator(SwapAggregator):
    """Aggregator returning fixed quotes and appending a placeholder swap call."""

    name = "fake-aggregator"

    def __init__(self, amounts: Optional[List[int]] = None) -> None:
        self.amounts = [100, 150, 120] if amounts is None else amounts
        self.quote_error: Optional[Exception] = None
        self.quote_calls: List[Dict[str, Any]] = []
        self.swap_slippage: List[int] = []

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy"}

    async def quote(self, coin_type_in, coin_type_out, amount_in):
        self.quote_calls.append({"in": coin_type_in, "out": coin_type_out, "amount": amount_in})
        if self.quote_error is not None:
            raise self.quote_error
        return [
            SwapQuote(amount_out=amount, provider=f"venue{i}", raw={"amountOut": str(amount)})
            for i, amount in enumerate(self.amounts)
        ]

    async def swap(self, tx: ProgrammableTransaction, quote, coin_in: Argument, signer_address, slippage_bps):
        self.swap_slippage.append(slippage_bps)
        return tx.move_call("0xagg::router::swap", [], [coin_in])

    async def build(self, tx, sender):
        return b"tx-bytes"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        executor_private_key="0x" + "11" * 32,
        execution_delay_ms=0,
        max_retries=2,
    )


@pytest.fixture
def signer():
    return Signer(bytes([7]) * 32)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def aggregator():
    return FakeAggregator()


@pytest.fixture
def context(settings, ledger, aggregator, signer):
    return ExecutorContext(
        settings=settings,
        ledger=ledger,
        aggregator=aggregator,
        signer=signer,
        clock=lambda: NOW_MS,
    )
