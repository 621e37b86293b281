"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Channel subscription manager (push feed)                          ║
║                                                                              ║
║  One MongoDB change stream per entity type (companies, representatives),     ║
║  shared by every subscriber of that type. The feed cannot be filtered        ║
║  server-side: each subscriber receives every insert/update/delete and        ║
║  decides for itself (services/reconciliation.py).                            ║
║                                                                              ║
║  STATES: SUBSCRIBED -> CHANNEL_ERROR -> RECONNECTING -> SUBSCRIBED ... CLOSED║
║                                                                              ║
║  RULES:                                                                      ║
║  - unsubscribe() is idempotent, accepts None, no event after it returns      ║
║  - a channel error is logged then retried with backoff (RETRY_DELAYS)        ║
║  - after a reconnect, on_reconnect() lets the owner force a full re-fetch    ║
║  - no ordering is assumed relative to the owner's initial fetch              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import asyncio
import inspect
import logging
import uuid
from typing import Callable, Dict, List, Optional

from models.entity import EntityType
from models.events import EventType, OPERATION_TYPES, make_event

logger = logging.getLogger("channels")

# Reconnect backoff: 1s, 2s, 5s, 15s, 30s, then 60s forever
RETRY_DELAYS = [1, 2, 5, 15, 30, 60]

SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
RECONNECTING = "RECONNECTING"
CLOSED = "CLOSED"


def _clean_document(doc: Optional[dict], fallback_id: Optional[str] = None) -> Optional[dict]:
    if not doc:
        return None
    record = {k: v for k, v in doc.items() if k != "_id"}
    if "id" not in record:
        record["id"] = str(doc.get("_id", fallback_id))
    return record


def normalize_change(change: dict) -> Optional[dict]:
    """
    MongoDB change document -> {"eventType", "new", "old"}.
    Returns None for operations that are not row mutations (drop, invalidate...).
    """
    event_type = OPERATION_TYPES.get(change.get("operationType"))
    if event_type is None:
        logger.info(f"Ignored change operation: {change.get('operationType')}")
        return None

    key = (change.get("documentKey") or {}).get("_id")
    doc_id = str(key) if key is not None else None

    old = _clean_document(change.get("fullDocumentBeforeChange"), doc_id)
    if old is None and doc_id:
        old = {"id": doc_id}

    if event_type == EventType.DELETE:
        return make_event(event_type.value, None, old)

    new = _clean_document(change.get("fullDocument"), doc_id)
    if new is None:
        # updateLookup found nothing: the document is gone, a delete follows
        return None
    return make_event(event_type.value, new, old)


class ChannelHandle:
    """One subscriber registration. Returned by subscribe(), passed to unsubscribe()."""

    def __init__(self, entity_type: EntityType, on_event: Callable, on_reconnect: Optional[Callable] = None):
        self.id = str(uuid.uuid4())
        self.entity_type = entity_type
        self.on_event = on_event
        self.on_reconnect = on_reconnect
        self.closed = False

    def __repr__(self):
        return f"<ChannelHandle {self.entity_type.value} {self.id[:8]} closed={self.closed}>"


class ChannelManager:
    """Owns the change streams. Created on startup, closed on shutdown."""

    def __init__(self, db, retry_delays: List[float] = None):
        self.db = db
        self.retry_delays = retry_delays or RETRY_DELAYS
        self._listeners: Dict[EntityType, List[ChannelHandle]] = {}
        self._tasks: Dict[EntityType, asyncio.Task] = {}
        self.status: Dict[EntityType, str] = {}

    # ==================== PUBLIC API ====================

    async def subscribe(
        self,
        entity_type: EntityType,
        on_event: Callable[[dict], None],
        on_reconnect: Optional[Callable[[], object]] = None,
    ) -> ChannelHandle:
        """Register a callback for every change of the entity collection"""
        entity_type = EntityType(entity_type)
        handle = ChannelHandle(entity_type, on_event, on_reconnect)
        self._listeners.setdefault(entity_type, []).append(handle)

        task = self._tasks.get(entity_type)
        if task is None or task.done():
            self._tasks[entity_type] = asyncio.create_task(self._watch(entity_type))

        logger.info(f"[{entity_type.value}] subscriber added ({len(self._listeners[entity_type])} active)")
        return handle

    async def unsubscribe(self, handle: Optional[ChannelHandle]) -> None:
        """Release a subscription. Safe with None and with an already released handle."""
        if handle is None or handle.closed:
            return
        handle.closed = True

        listeners = self._listeners.get(handle.entity_type, [])
        if handle in listeners:
            listeners.remove(handle)

        if not listeners:
            await self._stop_stream(handle.entity_type)

    async def close_all(self) -> None:
        for listeners in list(self._listeners.values()):
            for handle in list(listeners):
                handle.closed = True
            listeners.clear()
        for entity_type in list(self._tasks):
            await self._stop_stream(entity_type)

    def subscriber_count(self, entity_type: EntityType) -> int:
        return len(self._listeners.get(EntityType(entity_type), []))

    # ==================== INTERNALS ====================

    def _set_status(self, entity_type: EntityType, status: str, detail: str = "") -> None:
        self.status[entity_type] = status
        message = f"[{entity_type.value}] subscription status: {status}"
        if detail:
            message += f" ({detail})"
        if status == CHANNEL_ERROR:
            logger.error(message)
        elif status == RECONNECTING:
            logger.warning(message)
        else:
            logger.info(message)

    async def _stop_stream(self, entity_type: EntityType) -> None:
        task = self._tasks.pop(entity_type, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"[{entity_type.value}] stream shutdown error: {str(e)}")
        self._set_status(entity_type, CLOSED)

    def _dispatch(self, entity_type: EntityType, event: dict) -> None:
        for handle in list(self._listeners.get(entity_type, [])):
            if handle.closed:
                continue
            try:
                handle.on_event(event)
            except Exception as e:
                logger.error(f"[{entity_type.value}] subscriber {handle.id[:8]} failed: {str(e)}")

    async def _notify_reconnect(self, entity_type: EntityType) -> None:
        for handle in list(self._listeners.get(entity_type, [])):
            if handle.closed or handle.on_reconnect is None:
                continue
            try:
                result = handle.on_reconnect()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[{entity_type.value}] reconnect callback failed: {str(e)}")

    async def _watch(self, entity_type: EntityType) -> None:
        collection = self.db[entity_type.value]
        attempt = 0
        had_error = False

        while True:
            try:
                async with collection.watch(
                    full_document="updateLookup",
                    full_document_before_change="whenAvailable",
                ) as stream:
                    self._set_status(entity_type, SUBSCRIBED)
                    if had_error:
                        had_error = False
                        await self._notify_reconnect(entity_type)
                    attempt = 0

                    async for change in stream:
                        event = normalize_change(change)
                        if event is not None:
                            self._dispatch(entity_type, event)

                # stream ended without error (invalidate): reopen it
                detail = "stream closed by server"
            except asyncio.CancelledError:
                raise
            except Exception as e:
                detail = str(e)

            had_error = True
            self._set_status(entity_type, CHANNEL_ERROR, detail)
            delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
            attempt += 1
            self._set_status(entity_type, RECONNECTING, f"attempt {attempt} in {delay}s")
            await asyncio.sleep(delay)
