"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Reconciliation reducer                                            ║
║                                                                              ║
║  reduce_event(event, current, filters) -> next list                          ║
║                                                                              ║
║  INSERT : prepend if filters empty or match, else no-op                      ║
║  UPDATE : {matches_now, was_present}                                         ║
║           T,T -> merge in place (position kept)                              ║
║           T,F -> prepend                                                     ║
║           F,T -> remove                                                      ║
║           F,F -> no-op                                                       ║
║  DELETE : remove old.id, whatever the filters                                ║
║  other  : no-op + warning                                                    ║
║                                                                              ║
║  RULES:                                                                      ║
║  - new.is_deleted = True never enters the list (treated as a removal)        ║
║  - indeterminate match (None) -> list unchanged, wait for the next fetch     ║
║  - never raises: an exception here would kill the channel callback           ║
║  - inserts are prepended, NOT placed in sort order (see DESIGN.md)           ║
║  - the input list is never mutated                                           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import List, Optional

from models.events import EventType
from models.filters import FilterSet
from services.predicates import matches

logger = logging.getLogger("reconciliation")


def _record_id(record) -> Optional[str]:
    if isinstance(record, dict):
        return record.get("id")
    return None


def _index_of(items: List[dict], record_id: str) -> int:
    for i, item in enumerate(items):
        if item.get("id") == record_id:
            return i
    return -1


def _without(items: List[dict], record_id: str) -> List[dict]:
    return [item for item in items if item.get("id") != record_id]


def _apply_upsert(current: List[dict], new: dict, filters: FilterSet) -> List[dict]:
    record_id = new["id"]
    position = _index_of(current, record_id)
    was_present = position >= 0

    if new.get("is_deleted"):
        return _without(current, record_id) if was_present else current

    matches_now = matches(new, filters)
    if matches_now is None:
        logger.debug(f"Indeterminate match for {record_id}, waiting for re-fetch")
        return current

    if matches_now and was_present:
        merged = {**current[position], **new}
        return current[:position] + [merged] + current[position + 1:]
    if matches_now:
        return [new] + current
    if was_present:
        return _without(current, record_id)
    return current


def reduce_event(event: dict, current: List[dict], filters: FilterSet) -> List[dict]:
    """
    Compute the next list state for one change event.
    Deterministic given its three inputs. Returns `current` itself when nothing changes.
    """
    try:
        event_type = event.get("eventType")
        new = event.get("new")
        old = event.get("old")

        if event_type == EventType.INSERT:
            record_id = _record_id(new)
            if not record_id:
                logger.warning(f"INSERT without record id ignored: {event}")
                return current
            if new.get("is_deleted"):
                return current
            if _index_of(current, record_id) >= 0:
                # already fetched: the fetch and the subscription are not atomic
                return _apply_upsert(current, new, filters)
            if filters.is_empty or matches(new, filters) is True:
                return [new] + current
            return current

        if event_type == EventType.UPDATE:
            if not _record_id(new):
                logger.warning(f"UPDATE without record id ignored: {event}")
                return current
            return _apply_upsert(current, new, filters)

        if event_type == EventType.DELETE:
            record_id = _record_id(old)
            if not record_id:
                logger.warning(f"DELETE without record id ignored: {event}")
                return current
            if _index_of(current, record_id) < 0:
                return current
            return _without(current, record_id)

        logger.warning(f"Unknown event type: {event_type}")
        return current

    except Exception as e:
        logger.error(f"Reducer error, event ignored: {str(e)}")
        return current


def reduce_events(events: List[dict], current: List[dict], filters: FilterSet) -> List[dict]:
    """Fold a sequence of events, in order"""
    for event in events:
        current = reduce_event(event, current, filters)
    return current
