"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - LiveList (page controller)                                        ║
║                                                                              ║
║  One instance per open list view. Owns:                                      ║
║  - the authoritative page (fetch)                                            ║
║  - one channel subscription                                                  ║
║  - the reconciled rows between two fetches (reducer)                         ║
║                                                                              ║
║  start()        : subscribe, then fetch                                      ║
║  set_filters()  : new filter snapshot, page 1, full re-fetch                 ║
║  set_page()     : full re-fetch                                              ║
║  stop()         : unsubscribe + cancel in-flight fetch, idempotent           ║
║                                                                              ║
║  A fetch that resolves after stop() or after a newer fetch is discarded.     ║
║  Events received while a fetch is in flight are replayed onto its result.    ║
║  `version` increases on every state change.                                  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from models.entity import EntityType
from models.filters import FilterSet, parse_filters
from services.reconciliation import reduce_event

logger = logging.getLogger("live_list")

FetchFn = Callable[[FilterSet, int, int], Awaitable[dict]]
EnrichFn = Callable[[List[dict]], Awaitable[List[dict]]]


class LiveList:

    def __init__(
        self,
        entity_type: EntityType,
        fetch: FetchFn,
        channels,
        filters: Union[FilterSet, dict, None] = None,
        page: int = 1,
        page_size: int = 50,
        enrich: Optional[EnrichFn] = None,
        on_change: Optional[Callable] = None,
        resync_interval: Optional[float] = None,
    ):
        self.entity_type = EntityType(entity_type)
        self.filters = self._coerce_filters(filters)
        self.page = max(int(page or 1), 1)
        self.page_size = page_size

        self.rows: List[dict] = []
        self.total = 0
        self.error: Optional[str] = None
        self.loading = False
        self.version = 0

        self._fetch = fetch
        self._channels = channels
        self._enrich = enrich
        self._on_change = on_change
        self._resync_interval = resync_interval

        self._handle = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending: List[dict] = []
        self._fetch_task: Optional[asyncio.Task] = None
        self._worker: Optional[asyncio.Task] = None
        self._resync_task: Optional[asyncio.Task] = None
        self._generation = 0
        self._started = False
        self._stopped = False

    def _coerce_filters(self, filters) -> FilterSet:
        if isinstance(filters, FilterSet):
            return filters
        return parse_filters(self.entity_type, filters)

    # ==================== LIFECYCLE ====================

    async def start(self) -> None:
        if self._started or self._stopped:
            return
        self._started = True

        # subscribe before the first fetch; events in between are replayed onto it
        self.loading = True
        self._worker = asyncio.create_task(self._consume())
        self._handle = await self._channels.subscribe(
            self.entity_type, self._on_event, on_reconnect=self.refresh
        )
        if self._stopped:
            return

        await self.refresh()
        if self._stopped:
            return

        if self._resync_interval:
            self._resync_task = asyncio.create_task(self._resync_loop())

        logger.info(f"[{self.entity_type.value}] live list started (page {self.page})")

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True

        handle, self._handle = self._handle, None
        try:
            await self._channels.unsubscribe(handle)
        except Exception as e:
            logger.error(f"[{self.entity_type.value}] unsubscribe failed: {str(e)}")

        for task in (self._fetch_task, self._worker, self._resync_task):
            if task is None or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"[{self.entity_type.value}] task shutdown error: {str(e)}")

        logger.info(f"[{self.entity_type.value}] live list stopped")

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ==================== FETCH ====================

    async def set_filters(self, filters: Union[FilterSet, dict, None], page: int = 1) -> None:
        """Raises pydantic.ValidationError on unknown keys or bad values"""
        self.filters = self._coerce_filters(filters)
        self.page = max(int(page or 1), 1)
        await self.refresh()

    async def set_page(self, page: int) -> None:
        self.page = max(int(page or 1), 1)
        await self.refresh()

    async def refresh(self) -> None:
        """Full re-fetch of the current page. Supersedes any fetch in flight."""
        if self._stopped:
            return

        if self._fetch_task and not self._fetch_task.done():
            self._fetch_task.cancel()

        self._generation += 1
        generation = self._generation
        # events already received were committed before this fetch reads
        self._pending = []
        self.loading = True
        task = asyncio.create_task(self._fetch(self.filters, self.page, self.page_size))
        self._fetch_task = task

        try:
            result = await task
        except asyncio.CancelledError:
            # the caller itself is being cancelled: propagate
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # superseded by a newer fetch, or stopped
            return
        except Exception as e:
            if self._stopped or generation != self._generation:
                return
            self.loading = False
            self._pending = []
            self.error = str(e)
            logger.error(f"[{self.entity_type.value}] fetch failed: {str(e)}")
            await self._changed()
            return

        if self._stopped or generation != self._generation:
            return

        rows = list(result.get("rows") or [])
        total = result.get("total", len(rows))
        pending, self._pending = self._pending, []
        for event in pending:
            next_rows = reduce_event(event, rows, self.filters)
            total = max(total + len(next_rows) - len(rows), 0)
            rows = next_rows
        if pending:
            logger.debug(f"[{self.entity_type.value}] replayed {len(pending)} event(s) onto fetched page")

        self.rows = rows
        self.total = total
        self.error = None
        self.loading = False
        await self._changed()

    async def _resync_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._resync_interval)
            logger.debug(f"[{self.entity_type.value}] periodic resync")
            await self.refresh()

    # ==================== PUSH EVENTS ====================

    def _on_event(self, event: dict) -> None:
        if not self._stopped:
            self._queue.put_nowait(event)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.apply_event(event)
            except Exception as e:
                logger.error(f"[{self.entity_type.value}] event handling failed: {str(e)}")

    async def _enrich_event(self, event: dict) -> dict:
        new = event.get("new")
        if not self._enrich or not isinstance(new, dict) or new.get("is_deleted"):
            return event
        try:
            enriched = await self._enrich([new])
        except Exception as e:
            logger.warning(f"[{self.entity_type.value}] enrichment failed, raw record kept: {str(e)}")
            return event
        if enriched:
            return {**event, "new": enriched[0]}
        return event

    async def apply_event(self, event: dict) -> bool:
        """Run one change event through the reducer. Returns True if the rows changed."""
        if self._stopped:
            return False

        event = await self._enrich_event(event)
        if self._stopped:
            return False
        if self.loading:
            self._pending.append(event)

        current = self.rows
        next_rows = reduce_event(event, current, self.filters)
        if next_rows is current:
            return False

        self.total = max(self.total + len(next_rows) - len(current), 0)
        self.rows = next_rows
        await self._changed()
        return True

    # ==================== OUTPUT ====================

    async def _changed(self) -> None:
        self.version += 1
        if self._on_change is None:
            return
        try:
            result = self._on_change(self)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"[{self.entity_type.value}] change listener failed: {str(e)}")

    def snapshot(self) -> dict:
        return {
            "type": "snapshot",
            "entity_type": self.entity_type.value,
            "rows": self.rows,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "version": self.version,
            "error": self.error,
        }
