"""
Executor context.

Everything a keeper process shares (settings, ledger and aggregator clients,
the signing key and the event bus) is built once at process entry and
passed explicitly to the components that need it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .config import Settings
from .core.dca.discovery import DiscoveryScanner
from .core.dca.eligibility import now_ms
from .core.dca.events import EventBus
from .core.dca.execution import ExecutionHandler
from .core.dca.price_feeds import PriceFeedLookup
from .core.dca.queue import QueueOptions
from .core.recovery.errors import ConfigurationError
from .core.recovery.strategies import CancellationToken
from .core.wallet.signer import Signer
from .providers.aggregator import AggregatorClient
from .providers.base import LedgerClient, SwapAggregator
from .providers.sui import SuiRpcClient

logger = logging.getLogger(__name__)


@dataclass
class ExecutorContext:
    settings: Settings
    ledger: LedgerClient
    aggregator: SwapAggregator
    price_feeds: PriceFeedLookup = field(default_factory=PriceFeedLookup)
    signer: Optional[Signer] = None
    events: EventBus = field(default_factory=EventBus)
    clock: Callable[[], int] = now_ms
    stop: CancellationToken = field(default_factory=CancellationToken)

    @property
    def executor_address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    def scanner(self) -> DiscoveryScanner:
        return DiscoveryScanner(
            self.ledger,
            self.settings.created_event_type,
            page_size=self.settings.discovery_page_size,
            batch_size=self.settings.discovery_batch_size,
            concurrency=self.settings.discovery_concurrency,
            clock=self.clock,
            events=self.events,
        )

    def handler(self) -> ExecutionHandler:
        return ExecutionHandler(
            self.ledger,
            self.aggregator,
            self.price_feeds,
            self.signer,
            self.settings,
            clock=self.clock,
        )

    def queue_options(self, **overrides: Any) -> QueueOptions:
        return QueueOptions.from_settings(self.settings, **overrides)

    def shutdown(self) -> None:
        """Ask running batches to stop; their pending orders resolve as cancelled."""
        self.stop.cancel()

    async def aclose(self) -> None:
        for client in (self.ledger, self.aggregator):
            close = getattr(client, "close", None)
            if close is not None:
                await close()


def build_context(settings: Settings, require_signer: bool = False) -> ExecutorContext:
    """
    Wire the production collaborators for one process.

    Raises:
        ConfigurationError: signing key missing while required, or unreadable
    """
    signer: Optional[Signer] = None
    if settings.has_private_key:
        signer = Signer.from_secret(settings.executor_private_key)
        logger.info("Executor address: %s", signer.address)
    elif require_signer:
        raise ConfigurationError("EXECUTOR_PRIVATE_KEY is required to execute orders")

    return ExecutorContext(
        settings=settings,
        ledger=SuiRpcClient.from_settings(settings),
        aggregator=AggregatorClient.from_settings(settings),
        signer=signer,
    )
