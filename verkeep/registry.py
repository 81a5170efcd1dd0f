"""In-memory buffer of raw query events awaiting persistence."""

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Optional

from .models import ProjectVersionCoordinate, QueryEvent

logger = logging.getLogger(__name__)


class QueryMetricsRegistry:
    """Fast-path recorder of version queries.

    Events live only in process memory until the metrics handler drains them,
    so anything not yet persisted is lost on a crash. ``find_first`` peeks;
    only ``remove`` takes an event out of the buffer.
    """

    def __init__(self):
        self._events: Deque[QueryEvent] = deque()
        self._lock = threading.Lock()

    def record(
        self,
        coordinate: ProjectVersionCoordinate,
        timestamp: Optional[datetime] = None,
    ) -> QueryEvent:
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        event = QueryEvent(coordinate=coordinate, timestamp=_to_utc(timestamp))
        with self._lock:
            self._events.append(event)
        return event

    def find_first(self) -> Optional[QueryEvent]:
        with self._lock:
            return self._events[0] if self._events else None

    def remove(self, event: QueryEvent) -> bool:
        with self._lock:
            if self._events and self._events[0] is event:
                self._events.popleft()
                return True
            try:
                self._events.remove(event)
            except ValueError:
                logger.warning(f"Query event for {event.coordinate} was already drained")
                return False
            return True

    def size(self) -> int:
        with self._lock:
            return len(self._events)

    def __len__(self) -> int:
        return self.size()


def _to_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC already.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
