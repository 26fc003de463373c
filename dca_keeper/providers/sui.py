"""
Sui JSON-RPC Provider.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .base import LedgerClient, TransactionResponse
from ..config import Settings
from ..core.recovery.errors import LedgerRpcError, http_status_message, transport_error_message
from ..core.wallet.signer import Signer

logger = logging.getLogger(__name__)

OBJECT_OPTIONS = {"showContent": True, "showType": True}
EFFECT_OPTIONS = {"showEffects": True, "showEvents": True}


@dataclass
class SuiRpcConfig:
    rpc_url: str
    timeout_s: float = 30.0


def _status_error(effects: Optional[Dict[str, Any]]) -> Optional[str]:
    status = (effects or {}).get("status") or {}
    if status.get("status", "success") == "success":
        return None
    return status.get("error") or "Transaction failed"


class SuiRpcClient(LedgerClient):
    name = "sui"
    timeout_s = 30

    def __init__(self, config: SuiRpcConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._client = client
        self._request_id = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> SuiRpcClient:
        return cls(SuiRpcConfig(rpc_url=settings.sui_rpc_url, timeout_s=settings.request_timeout_seconds))

    async def ready(self) -> bool:
        return bool(self._config.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": "RPC URL not configured"}

        try:
            checkpoint = await self._rpc_call("sui_getLatestCheckpointSequenceNumber", [])
            return {"status": "healthy", "checkpoint": checkpoint}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    async def query_events(
        self,
        event_type: str,
        cursor: Optional[Dict[str, str]] = None,
        limit: int = 100,
        descending: bool = True,
    ) -> Dict[str, Any]:
        result = await self._rpc_call(
            "suix_queryEvents",
            [{"MoveEventType": event_type}, cursor, limit, descending],
        )
        if not isinstance(result, dict):
            raise LedgerRpcError("Invalid response for suix_queryEvents", method="suix_queryEvents")
        return result

    async def get_object(self, object_id: str) -> Dict[str, Any]:
        result = await self._rpc_call("sui_getObject", [object_id, OBJECT_OPTIONS])
        return result if isinstance(result, dict) else {}

    async def multi_get_objects(self, object_ids: List[str]) -> List[Dict[str, Any]]:
        if not object_ids:
            return []
        result = await self._rpc_call("sui_multiGetObjects", [object_ids, OBJECT_OPTIONS])
        if not isinstance(result, list):
            raise LedgerRpcError("Invalid response for sui_multiGetObjects", method="sui_multiGetObjects")
        return result

    async def submit_transaction(
        self,
        tx_bytes: bytes,
        signer: Signer,
        dry_run: bool = False,
    ) -> TransactionResponse:
        encoded = base64.b64encode(tx_bytes).decode("ascii")

        if dry_run:
            result = await self._rpc_call("sui_dryRunTransactionBlock", [encoded])
            return TransactionResponse(
                digest=None,
                error=_status_error(result.get("effects")),
                events=result.get("events") or [],
            )

        signature = signer.sign_transaction(tx_bytes)
        result = await self._rpc_call(
            "sui_executeTransactionBlock",
            [encoded, [signature], EFFECT_OPTIONS, "WaitForLocalExecution"],
        )
        return TransactionResponse(
            digest=result.get("digest"),
            error=_status_error(result.get("effects")),
            events=result.get("events") or [],
        )

    async def get_balance(self, address: str, coin_type: str = "0x2::sui::SUI") -> int:
        result = await self._rpc_call("suix_getBalance", [address, coin_type])
        return int((result or {}).get("totalBalance") or 0)

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_s)

        self._request_id += 1
        try:
            response = await self._client.post(
                self._config.rpc_url,
                json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
            )
        except httpx.TransportError as exc:
            raise LedgerRpcError(transport_error_message(exc), method=method) from exc

        if response.status_code >= 400:
            logger.debug("Sui RPC %s returned HTTP %s", method, response.status_code)
            raise LedgerRpcError(
                http_status_message(response.status_code),
                code=response.status_code,
                method=method,
            )
        payload = response.json()
        if "error" in payload:
            error = payload["error"] or {}
            logger.debug("Sui RPC %s failed: %s", method, error)
            raise LedgerRpcError(
                str(error.get("message") or error),
                code=error.get("code"),
                method=method,
            )
        return payload.get("result")
