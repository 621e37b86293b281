"""
DCLense - Change events

Wire shape pushed by the channel manager and consumed by the reducer:
    {"eventType": "INSERT" | "UPDATE" | "DELETE", "new": dict | None, "old": dict | None}
"""

from enum import Enum
from typing import Optional


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# MongoDB change stream operationType -> EventType
OPERATION_TYPES = {
    "insert": EventType.INSERT,
    "update": EventType.UPDATE,
    "replace": EventType.UPDATE,
    "delete": EventType.DELETE,
}


def make_event(event_type: str, new: Optional[dict] = None, old: Optional[dict] = None) -> dict:
    return {"eventType": event_type, "new": new, "old": old}
