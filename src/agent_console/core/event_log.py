"""Bounded, append-only diagnostic trail of console events.

The log only observes: nothing reads it back to decide state.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, List

from .models import EventLogEntry

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 300

EventListener = Callable[[EventLogEntry], None]


class EventLog:
    """Keeps the most recent ``capacity`` entries; the oldest are evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[EventLogEntry] = deque(maxlen=capacity)
        self._listeners: List[EventListener] = []

    def append(self, kind: str, payload: Any = None) -> EventLogEntry:
        entry = EventLogEntry(
            timestamp=datetime.now(timezone.utc),
            kind=kind,
            payload=payload,
        )
        self._entries.append(entry)
        logger.debug("event %s: %r", kind, payload)

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                logger.exception("Event listener failed for %s", kind)
        return entry

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Call ``listener`` for every new entry. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def entries(self) -> List[EventLogEntry]:
        """All retained entries, oldest first."""
        return list(self._entries)

    def recent(self, count: int) -> List[EventLogEntry]:
        """The newest ``count`` entries, newest first."""
        if count <= 0:
            return []
        return list(reversed(self._entries))[:count]

    def kinds(self) -> List[str]:
        return [entry.kind for entry in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
