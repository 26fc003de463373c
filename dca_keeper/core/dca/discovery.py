"""
DCA Discovery

Scans the ledger's "DCA created" event log page by page, resolves the
referenced accounts in batched multi-object reads and keeps the ones that are
due for execution.

Page cursors are opaque strings ``"<txDigest>:<eventSeq>"``. Each page's due
orders are ranked most overdue first before the result limit is applied. A
call that stops inside a page returns a resume cursor
``"<page cursor>+<skip>"``: the next call rereads that page and skips the
orders already handed out from it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import structlog

from .eligibility import filter_eligible, now_ms, sort_by_urgency
from .events import EventBus, KeeperEventType
from .models import (
    DcaAccount,
    DiscoveryCounts,
    DiscoveryOptions,
    DiscoveryPage,
    DiscoveryResult,
    EligibleOrder,
)
from ...providers.base import LedgerClient

logger = logging.getLogger(__name__)
_slog = structlog.stdlib.get_logger("dca.discovery")

MAX_EVENTS_PER_QUERY = 100
MULTI_GET_BATCH_SIZE = 50
FETCH_CONCURRENCY = 10

OrderCallback = Callable[[EligibleOrder], Union[None, Awaitable[None]]]


def encode_cursor(cursor: Optional[Dict[str, str]]) -> Optional[str]:
    if not cursor or not cursor.get("txDigest"):
        return None
    return f"{cursor['txDigest']}:{cursor.get('eventSeq', '0')}"


def decode_cursor(cursor: Optional[str]) -> Optional[Dict[str, str]]:
    if not cursor:
        return None
    tx_digest, sep, event_seq = cursor.rpartition(":")
    if not sep or not tx_digest or not event_seq.isdigit():
        raise ValueError(f"Invalid discovery cursor: {cursor!r}")
    return {"txDigest": tx_digest, "eventSeq": event_seq}


def format_resume_cursor(page_cursor: Optional[str], skip: int) -> str:
    """Cursor that rereads the page at ``page_cursor`` (None: newest page) past ``skip`` ranked orders."""
    return f"{page_cursor or ''}+{skip}"


def parse_resume_cursor(cursor: Optional[str]) -> Tuple[Optional[str], int]:
    """Split a discovery cursor into (page cursor, orders to skip on that page)."""
    if not cursor:
        return None, 0
    if "+" not in cursor:
        decode_cursor(cursor)
        return cursor, 0

    page_cursor, _, skip = cursor.rpartition("+")
    if not skip.isdigit():
        raise ValueError(f"Invalid discovery cursor: {cursor!r}")
    if page_cursor:
        decode_cursor(page_cursor)
    return page_cursor or None, int(skip)


class DiscoveryScanner:
    """
    Paginated scanner over the order-created event log.

    Page-level ledger errors propagate to the caller; an account that cannot
    be parsed is dropped on its own.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        event_type: str,
        page_size: int = MAX_EVENTS_PER_QUERY,
        batch_size: int = MULTI_GET_BATCH_SIZE,
        concurrency: int = FETCH_CONCURRENCY,
        clock: Callable[[], int] = now_ms,
        events: Optional[EventBus] = None,
    ):
        if page_size < 1 or batch_size < 1 or concurrency < 1:
            raise ValueError("page_size, batch_size and concurrency must be positive")
        self.ledger = ledger
        self.event_type = event_type
        self.page_size = min(page_size, MAX_EVENTS_PER_QUERY)
        self.batch_size = min(batch_size, MULTI_GET_BATCH_SIZE)
        self.concurrency = concurrency
        self.clock = clock
        self.events = events

    async def fetch_page(self, cursor: Optional[str] = None) -> DiscoveryPage:
        """One page of creation events, newest first."""
        response = await self.ledger.query_events(
            self.event_type,
            cursor=decode_cursor(cursor),
            limit=self.page_size,
            descending=True,
        )

        order_ids: List[str] = []
        for event in response.get("data") or []:
            order_id = (event.get("parsedJson") or {}).get("id")
            if order_id:
                order_ids.append(order_id)

        next_cursor = encode_cursor(response.get("nextCursor")) if response.get("hasNextPage") else None
        return DiscoveryPage(order_ids=order_ids, next_cursor=next_cursor)

    async def resolve_orders(self, order_ids: List[str]) -> List[DcaAccount]:
        """Fetch and parse accounts in request order, dropping unreadable ones."""
        if not order_ids:
            return []

        batches = [
            order_ids[i:i + self.batch_size]
            for i in range(0, len(order_ids), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch_batch(batch: List[str]) -> List[DcaAccount]:
            async with semaphore:
                objects = await self.ledger.multi_get_objects(batch)

            accounts: List[DcaAccount] = []
            for order_id, obj in zip(batch, objects):
                account = DcaAccount.from_sui_object(obj, order_id)
                if account is None:
                    logger.debug("Skipping unreadable DCA object %s", order_id)
                    continue
                accounts.append(account)
            return accounts

        results = await asyncio.gather(*(fetch_batch(batch) for batch in batches))
        return [account for batch in results for account in batch]

    async def _scan_page(
        self,
        cursor: Optional[str],
        options: Optional[DiscoveryOptions],
        skip: int = 0,
    ) -> tuple[DiscoveryPage, List[DcaAccount], List[EligibleOrder]]:
        """Read one page; its due orders come back most overdue first, minus the first ``skip``."""
        page = await self.fetch_page(cursor)
        accounts = await self.resolve_orders(page.order_ids)
        eligible = filter_eligible(accounts, self.clock(), options)
        return page, accounts, eligible[skip:]

    async def _scan_pages(
        self,
        options: Optional[DiscoveryOptions],
    ) -> AsyncIterator[tuple[DiscoveryPage, List[DcaAccount], List[EligibleOrder]]]:
        cursor, skip = parse_resume_cursor(options.cursor if options else None)
        while True:
            page, accounts, eligible = await self._scan_page(cursor, options, skip)
            yield page, accounts, eligible
            skip = 0
            cursor = page.next_cursor
            if cursor is None:
                return

    async def discover(self, options: Optional[DiscoveryOptions] = None) -> DiscoveryResult:
        """Scan until ``limit`` eligible orders are found or the log ends."""
        options = options or DiscoveryOptions()
        limit = max(1, options.limit)
        await self._emit(KeeperEventType.DISCOVERY_START, limit=limit, cursor=options.cursor)

        cursor, skip = parse_resume_cursor(options.cursor)
        total_discovered = 0
        total_eligible = 0
        found: List[EligibleOrder] = []

        while True:
            page, accounts, eligible = await self._scan_page(cursor, options, skip)
            total_discovered += len(accounts)
            total_eligible += len(eligible)

            room = limit - len(found)
            found.extend(eligible[:room])
            if len(eligible) > room:
                # Stopped inside this page: the next call rereads it past what was handed out.
                next_cursor: Optional[str] = format_resume_cursor(cursor, skip + room)
                break

            skip = 0
            cursor = page.next_cursor
            if cursor is None or len(found) >= limit:
                next_cursor = cursor
                break

        has_more = next_cursor is not None
        result = DiscoveryResult(
            orders=sort_by_urgency(found),
            has_more=has_more,
            next_cursor=next_cursor,
            total_discovered=total_discovered,
            total_eligible=total_eligible,
        )
        _slog.info(
            "dca_discovery_completed",
            discovered=total_discovered,
            eligible=total_eligible,
            returned=len(found),
            has_more=has_more,
        )
        await self._emit(
            KeeperEventType.DISCOVERY_COMPLETE,
            total_discovered=total_discovered,
            total_eligible=total_eligible,
            has_more=has_more,
        )
        return result

    async def discover_all(self, options: Optional[DiscoveryOptions] = None) -> List[EligibleOrder]:
        """Drain the log. Result is sorted by urgency across all pages."""
        found: List[EligibleOrder] = []
        async for _, _, eligible in self._scan_pages(options):
            found.extend(eligible)
        return sort_by_urgency(found)

    async def discover_stream(
        self,
        options: Optional[DiscoveryOptions] = None,
    ) -> AsyncIterator[EligibleOrder]:
        """Yield eligible orders one page at a time; each page is sorted by urgency."""
        async for _, _, eligible in self._scan_pages(options):
            for order in eligible:
                yield order

    async def discover_with_callback(
        self,
        callback: OrderCallback,
        options: Optional[DiscoveryOptions] = None,
    ) -> DiscoveryCounts:
        """Drain the log, handing every eligible order to ``callback``."""
        counts = DiscoveryCounts()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def invoke(order: EligibleOrder) -> bool:
            async with semaphore:
                try:
                    result = callback(order)
                    if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                        await result
                    return True
                except Exception as e:
                    logger.error("Discovery callback failed for %s: %s", order.id, e)
                    return False

        async for _, accounts, eligible in self._scan_pages(options):
            counts.total_discovered += len(accounts)
            counts.total_eligible += len(eligible)

            outcomes = await asyncio.gather(*(invoke(o) for o in eligible))
            counts.callback_failures += sum(1 for ok in outcomes if not ok)
        return counts

    async def count_eligible(self, options: Optional[DiscoveryOptions] = None) -> int:
        return len(await self.discover_all(options))

    async def _emit(self, event_type: KeeperEventType, **payload) -> None:
        if self.events is not None:
            await self.events.emit(event_type, **payload)
