from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from ..core.dca.models import SwapQuote
    from ..core.execution.tx_builder import Argument, ProgrammableTransaction
    from ..core.wallet.signer import Signer


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


@dataclass
class TransactionResponse:
    """Effects of a submitted or dry-run transaction."""

    digest: Optional[str] = None
    error: Optional[str] = None
    events: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def find_event(self, marker: str) -> Optional[Dict[str, Any]]:
        for event in self.events:
            if marker in str(event.get("type", "")):
                return event
        return None


class LedgerClient(Provider):
    """Read and write access to the ledger holding the DCA accounts."""

    @abstractmethod
    async def query_events(
        self,
        event_type: str,
        cursor: Optional[Dict[str, str]] = None,
        limit: int = 100,
        descending: bool = True,
    ) -> Dict[str, Any]:
        """One page of events: ``{"data": [...], "nextCursor": {...}, "hasNextPage": bool}``"""
        pass

    @abstractmethod
    async def get_object(self, object_id: str) -> Dict[str, Any]:
        """Fresh object read with content, never served from a cache"""
        pass

    @abstractmethod
    async def multi_get_objects(self, object_ids: List[str]) -> List[Dict[str, Any]]:
        """Batch object read, responses in request order"""
        pass

    @abstractmethod
    async def submit_transaction(
        self,
        tx_bytes: bytes,
        signer: "Signer",
        dry_run: bool = False,
    ) -> TransactionResponse:
        """Sign and execute, or dry-run, serialized transaction bytes"""
        pass

    @abstractmethod
    async def get_balance(self, address: str, coin_type: str = "0x2::sui::SUI") -> int:
        """Total balance of one coin type in smallest units"""
        pass


class SwapAggregator(Provider):
    """Multi-venue swap routing used inside the trade transaction."""

    @abstractmethod
    async def quote(self, coin_type_in: str, coin_type_out: str, amount_in: int) -> List["SwapQuote"]:
        """Quotes from every available venue"""
        pass

    @abstractmethod
    async def swap(
        self,
        tx: "ProgrammableTransaction",
        quote: "SwapQuote",
        coin_in: "Argument",
        signer_address: str,
        slippage_bps: int,
    ) -> "Argument":
        """Append the swap commands to ``tx`` and return the output coin"""
        pass

    @abstractmethod
    async def build(self, tx: "ProgrammableTransaction", sender: str) -> bytes:
        """Resolve objects and gas, then serialize ``tx`` to transaction bytes"""
        pass
