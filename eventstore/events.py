"""
Event model for the key/value history.

A key's current state is never stored. It is derived from the last event of
its record by :func:`key_state`, and the rule that tells a live event from a
delete lives only in :func:`is_live`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from eventstore.exceptions import InconsistentRecordError


class EventKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class KeyState(Enum):
    ABSENT = "absent"
    LIVE = "live"
    DELETED = "deleted"


@dataclass(frozen=True)
class Event:
    """A single immutable entry in a key's history."""

    kind: EventKind
    value: Optional[str] = None

    @classmethod
    def create(cls, value: str) -> "Event":
        return cls(EventKind.CREATE, value)

    @classmethod
    def update(cls, value: str) -> "Event":
        return cls(EventKind.UPDATE, value)

    @classmethod
    def delete(cls) -> "Event":
        return cls(EventKind.DELETE)

    def to_dict(self) -> Dict[str, str]:
        # Deletes are written with an empty value
        return {"event": self.kind.value, "value": self.value or ""}


KeyRecord = List[Event]
Document = Dict[str, KeyRecord]


def is_live(event: Event) -> bool:
    """Return True if ``event`` leaves its key holding a value."""
    return event.kind != EventKind.DELETE and bool(event.value)


def latest_event(record: KeyRecord) -> Event:
    """Return the last event of ``record`` in insertion order."""
    if not record:
        raise InconsistentRecordError("key record has no events")
    return record[-1]


def key_state(document: Document, key: str) -> KeyState:
    """Derive the current state of ``key`` from its history."""
    record = document.get(key)
    if record is None:
        return KeyState.ABSENT
    if is_live(latest_event(record)):
        return KeyState.LIVE
    return KeyState.DELETED
