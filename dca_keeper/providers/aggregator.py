"""
Swap aggregator sidecar client.

Quoting and route construction for the Sui DEX aggregator live in a small
HTTP sidecar. The keeper sends it the partially built transaction and the
input coin argument; the sidecar appends the swap commands and returns the
updated transaction together with the output coin argument.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from .base import SwapAggregator
from ..config import Settings
from ..core.dca.models import SwapQuote
from ..core.execution.tx_builder import Argument, ProgrammableTransaction
from ..core.recovery.errors import http_status_message, transport_error_message

logger = logging.getLogger(__name__)


class AggregatorError(Exception):
    """Aggregator sidecar error."""
    pass


class AggregatorClient(SwapAggregator):
    name = "aggregator"
    timeout_s = 15

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> AggregatorClient:
        return cls(settings.aggregator_url)

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "Aggregator URL not configured"}
        try:
            client = self._get_client()
            response = await client.get(f"{self.base_url}/health")
            response.raise_for_status()
            return {"status": "healthy"}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    async def quote(self, coin_type_in: str, coin_type_out: str, amount_in: int) -> List[SwapQuote]:
        data = await self._post("/quote", {
            "coinTypeIn": coin_type_in,
            "coinTypeOut": coin_type_out,
            "amountIn": str(amount_in),
        })
        quotes = data.get("quotes") if isinstance(data, dict) else data
        return [SwapQuote.from_dict(q) for q in quotes or []]

    async def swap(
        self,
        tx: ProgrammableTransaction,
        quote: SwapQuote,
        coin_in: Argument,
        signer_address: str,
        slippage_bps: int,
    ) -> Argument:
        data = await self._post("/swap", {
            "quote": quote.raw,
            "signer": signer_address,
            "transaction": tx.to_dict(),
            "coinIn": coin_in.to_dict(),
            "slippageBps": slippage_bps,
        })
        try:
            updated = ProgrammableTransaction.from_dict(data["transaction"])
            coin_out = Argument.from_dict(data["coinOut"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AggregatorError(f"Invalid swap response: {exc}") from exc

        tx.inputs = updated.inputs
        tx.commands = updated.commands
        return coin_out

    async def build(self, tx: ProgrammableTransaction, sender: str) -> bytes:
        tx.sender = sender
        data = await self._post("/build", {"transaction": tx.to_dict(), "sender": sender})
        tx_bytes = data.get("txBytes") if isinstance(data, dict) else None
        if not tx_bytes:
            raise AggregatorError("Invalid build response: missing txBytes")
        return base64.b64decode(tx_bytes)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        client = self._get_client()
        try:
            response = await client.post(f"{self.base_url}{path}", json=payload)
        except httpx.TransportError as exc:
            raise AggregatorError(f"Aggregator {path}: {transport_error_message(exc)}") from exc
        if response.status_code >= 400:
            logger.warning("Aggregator %s failed (%s): %s", path, response.status_code, response.text[:200])
            raise AggregatorError(f"Aggregator {path} failed: {http_status_message(response.status_code)}")
        return response.json()
