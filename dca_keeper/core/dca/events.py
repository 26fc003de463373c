"""
Keeper lifecycle events.

Listeners are registered per event type and may be plain functions or
coroutines. A failing listener is logged and never affects the emitter or
the other listeners.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Union

logger = logging.getLogger(__name__)


class KeeperEventType(str, Enum):
    EXECUTION_START = "execution:start"
    EXECUTION_SUCCESS = "execution:success"
    EXECUTION_ERROR = "execution:error"
    BATCH_START = "batch:start"
    BATCH_COMPLETE = "batch:complete"
    DISCOVERY_START = "discovery:start"
    DISCOVERY_COMPLETE = "discovery:complete"


@dataclass
class KeeperEvent:
    type: KeeperEventType
    payload: Dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[KeeperEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Typed observer list shared by discovery and the execution queue."""

    def __init__(self) -> None:
        self._listeners: Dict[KeeperEventType, List[EventListener]] = {}

    def on(self, event_type: KeeperEventType, listener: EventListener) -> None:
        """Register a listener for an event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    async def emit(self, event_type: KeeperEventType, **payload: Any) -> None:
        listeners = list(self._listeners.get(event_type, []))
        if not listeners:
            return

        event = KeeperEvent(type=event_type, payload=payload)
        results = await asyncio.gather(
            *(self._invoke(cb, event) for cb in listeners),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Listener for %s failed: %s", event_type.value, result)

    @staticmethod
    async def _invoke(listener: EventListener, event: KeeperEvent) -> None:
        result = listener(event)
        if inspect.isawaitable(result):
            await result
