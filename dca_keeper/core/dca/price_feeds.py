"""
Oracle price feed lookup.

The DCA contract validates every trade against Pyth prices, so ``init_trade``
needs the PriceInfoObject ids for the input token, the output token and the
SUI/USD feed used for intermediate routing. This module maps coin types to
Pyth feed ids and feed ids to the PriceInfoObjects published on mainnet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..recovery.errors import PriceFeedNotFoundError


@dataclass(frozen=True)
class TokenInfo:
    """Registry entry for a token with a Pyth USD feed."""

    symbol: str
    name: str
    coin_type: str
    decimals: int
    pyth_feed_id: str  # 32-byte hex, no 0x prefix


SUI_FEED_ID = "23d7315113f5b1d3ba7a83604c44b94d79f4fd69af77f804fc7f920a6dc65744"

TOKEN_REGISTRY: Dict[str, TokenInfo] = {
    token.symbol: token
    for token in (
        TokenInfo("SUI", "Sui", "0x2::sui::SUI", 9, SUI_FEED_ID),
        TokenInfo(
            "USDC", "USD Coin",
            "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC",
            6, "eaa020c61cc479712813461ce153894a96a6c00b21ed0cfc2798d1f9a9e9c94a",
        ),
        TokenInfo(
            "USDT", "Tether USD (Wormhole)",
            "0xc060006111016b8a020ad5b33834984a437aaa7d3c74c18e09a95d48aceab08c::coin::COIN",
            6, "2b89b9dc8fdf9f34709a5b106b472f0f39bb6ca9ce04b0fd7f2e971688e2e53b",
        ),
        TokenInfo(
            "BUCK", "Bucket USD",
            "0xce7ff77a83ea0cb6fd39bd8748e2ec89a3f41e8efdc3f4eb123e0ca37b184db2::buck::BUCK",
            9, "fdf28a46570252b25fd31cb257973f865afc5ca2f320439e45d95e0394bc7382",
        ),
        TokenInfo(
            "DEEP", "DeepBook",
            "0xdeeb7a4662eec9f2f3def03fb937a663dddaa2e215b8078a284d026b7946c270::deep::DEEP",
            6, "29bdd5248234e33bd93d3b81100b5fa32eaa5997843847e2c2cb16d7c6d9f7ff",
        ),
        TokenInfo(
            "CETUS", "Cetus",
            "0x06864a6f921804860930db6ddbe2e16acdf8504495ea7481637a1c8b9a8fe54b::cetus::CETUS",
            9, "e5b274b2611143df055d6e7cd8d93fe1961716bcd4dca1cad87a83bc1e78c1ef",
        ),
        TokenInfo(
            "WAL", "Walrus",
            "0x356a26eb9e012a68958082340d4c4116e7f55615cf27affcff209cf0ae544f59::wal::WAL",
            9, "eba0732395fae9dec4bae12e52760b35fc1c5671e2da8b449c9af4efe5d54341",
        ),
        TokenInfo(
            "WBTC", "Wrapped Bitcoin (Wormhole)",
            "0x027792d9fed7f9844eb4839566001bb6f6cb4804f66aa2da6fe1ee242d896881::coin::COIN",
            8, "c9d8b075a5c69303365ae23633d4e085199bf5c520a3b90fed1322a0342ffc33",
        ),
        TokenInfo(
            "WETH", "Wrapped Ether (Wormhole)",
            "0xaf8cd5edc19c4512f4259f0bee101a40d41ebed738ade5874359610ef8eeced5::coin::COIN",
            8, "ff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace",
        ),
    )
}

# Pyth feed id -> PriceInfoObject id on Sui mainnet. Feeds without a known
# object are omitted and surface as PriceFeedNotFoundError.
PRICE_INFO_OBJECTS: Dict[str, str] = {
    "eaa020c61cc479712813461ce153894a96a6c00b21ed0cfc2798d1f9a9e9c94a":
        "0x5dec622733a204ca27f5a90d8c2fad453cc6665186fd5dff13a83d0b6c9027ab",  # USDC/USD
    "2b89b9dc8fdf9f34709a5b106b472f0f39bb6ca9ce04b0fd7f2e971688e2e53b":
        "0x985e3db9f93f76ee8bace7c3dd5cc676a096accd5d9e09e9ae0fb6571f8e7ff5",  # USDT/USD
    SUI_FEED_ID:
        "0x801dbc2f0053d34734814b2d6df491ce7807a725fe9a01ad74a07e9c51396c37",  # SUI/USD
    "e62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43":
        "0x9a62b4863bdeaabdc9500fce769cf7e72d5585eeb28a6d26e4cafadc13f76912",  # BTC/USD
    "ff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace":
        "0x9d0d275efbd37d8a8855f6f2c761fa5983293dd8ce202ee5196626de8fcd4469",  # ETH/USD
}


def normalize_coin_type(coin_type: str) -> str:
    """Canonical ``0x<addr>::module::Name`` form with leading zeros stripped.

    Object types from the RPC carry fully padded addresses without ``0x``
    (``000...02::sui::SUI``) while the registry uses the short form.
    """
    parts = coin_type.strip().split("::", 1)
    if len(parts) != 2:
        return coin_type.strip()
    address, rest = parts
    address = address.lower()
    if address.startswith("0x"):
        address = address[2:]
    address = address.lstrip("0") or "0"
    return f"0x{address}::{rest}"


@dataclass(frozen=True)
class PriceInfoSet:
    """PriceInfoObjects passed to ``init_trade``."""

    input_price_info: str
    output_price_info: str
    intermediate_price_info: str


class PriceFeedLookup:
    """Resolve coin types to Pyth PriceInfoObject ids."""

    def __init__(
        self,
        tokens: Optional[Iterable[TokenInfo]] = None,
        price_info_objects: Optional[Dict[str, str]] = None,
        intermediate_feed_id: str = SUI_FEED_ID,
    ):
        tokens = TOKEN_REGISTRY.values() if tokens is None else tokens
        self._by_type: Dict[str, TokenInfo] = {normalize_coin_type(t.coin_type): t for t in tokens}
        self._objects = {
            k.lower().removeprefix("0x"): v
            for k, v in (PRICE_INFO_OBJECTS if price_info_objects is None else price_info_objects).items()
            if v
        }
        self.intermediate_feed_id = intermediate_feed_id

    def token_for_type(self, coin_type: str) -> Optional[TokenInfo]:
        return self._by_type.get(normalize_coin_type(coin_type))

    def has_feed(self, coin_type: str) -> bool:
        return self.token_for_type(coin_type) is not None

    def supported_types(self) -> List[str]:
        return sorted(self._by_type)

    def price_info_object_for_feed(self, feed_id: str) -> str:
        object_id = self._objects.get(feed_id.lower().removeprefix("0x"))
        if not object_id:
            raise PriceFeedNotFoundError(f"feed {feed_id[:16]}...")
        return object_id

    def price_info_object_for_type(self, coin_type: str) -> str:
        token = self.token_for_type(coin_type)
        if token is None:
            raise PriceFeedNotFoundError(coin_type)
        try:
            return self.price_info_object_for_feed(token.pyth_feed_id)
        except PriceFeedNotFoundError:
            raise PriceFeedNotFoundError(coin_type) from None

    def resolve(self, input_type: str, output_type: str) -> PriceInfoSet:
        """All three price objects for a trade, or PriceFeedNotFoundError."""
        return PriceInfoSet(
            input_price_info=self.price_info_object_for_type(input_type),
            output_price_info=self.price_info_object_for_type(output_type),
            intermediate_price_info=self.price_info_object_for_feed(self.intermediate_feed_id),
        )
