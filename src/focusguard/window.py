"""Trailing, time-bounded buffer of activity events."""

from __future__ import annotations

import bisect
from typing import Callable, Iterator

from focusguard.events import ActivityEvent, EventType

# Retention of the in-memory window
WINDOW_MS = 10 * 60 * 1000


class WindowQuery:
    """Lazy, restartable view over the events of an :class:`EventWindow`.

    Each iteration walks the window afresh, so the same query object can be
    consumed any number of times.
    """

    def __init__(
        self,
        window: EventWindow,
        predicate: Callable[[ActivityEvent], bool] | None,
        since: float | None,
    ) -> None:
        self._window = window
        self._predicate = predicate
        self._since = since

    def __iter__(self) -> Iterator[ActivityEvent]:
        floor = self._window.cutoff
        if self._since is not None:
            floor = max(floor, self._since)
        for event in tuple(self._window._events):
            if event.timestamp < floor:
                continue
            if self._predicate is None or self._predicate(event):
                yield event

    def count(self) -> int:
        return sum(1 for _ in self)

    def last(self) -> ActivityEvent | None:
        found = None
        for event in self:
            found = event
        return found


class EventWindow:
    """Ordered buffer of events no older than ``now - window_ms``.

    Events are kept sorted by timestamp; events sharing a timestamp keep
    their insertion order.  No deduplication is performed.
    """

    def __init__(self, window_ms: float = WINDOW_MS) -> None:
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.window_ms = window_ms
        self._events: list[ActivityEvent] = []
        self._now: float | None = None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ActivityEvent]:
        return iter(self.query())

    @property
    def cutoff(self) -> float:
        """Oldest timestamp still admissible in queries."""
        if self._now is None:
            return float("-inf")
        return self._now - self.window_ms

    def ingest(self, event: ActivityEvent, now: float | None = None) -> None:
        """Insert *event* and evict anything older than the window.

        Args:
            event: The event to insert.
            now: Current time in ms.  Defaults to the newest time seen so far
                (or the event's own timestamp).
        """
        bisect.insort_right(self._events, event, key=lambda e: e.timestamp)
        if now is None:
            now = max(event.timestamp, self._now or event.timestamp)
        self.evict(now)

    def evict(self, now: float) -> int:
        """Drop every event with ``timestamp < now - window_ms``.

        Returns the number of events removed.  Time never moves backwards:
        an older *now* than previously seen is ignored.
        """
        if self._now is None or now > self._now:
            self._now = now
        cutoff = self.cutoff
        idx = bisect.bisect_left(self._events, cutoff, key=lambda e: e.timestamp)
        if idx:
            del self._events[:idx]
        return idx

    def query(
        self,
        predicate: Callable[[ActivityEvent], bool] | None = None,
        since: float | None = None,
    ) -> WindowQuery:
        """Return a lazy sequence of retained events matching *predicate*.

        Args:
            predicate: Optional filter.
            since: Only include events with ``timestamp >= since``.
        """
        return WindowQuery(self, predicate, since)

    def of_type(self, event_type: EventType, since: float | None = None) -> WindowQuery:
        """Shortcut for ``query(lambda e: e.type is event_type, since)``."""
        return self.query(lambda e: e.type is event_type, since)
