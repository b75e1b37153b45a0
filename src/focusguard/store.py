"""History storage: events, score snapshots, interventions, daily summaries.

:class:`HistoryStore` is the interface the core talks to.  Two backings
ship here: an in-memory store (tests, ephemeral sessions) and a directory
of append-only JSONL files.  :class:`EventBatcher` buffers event writes and
re-queues a batch when the store fails.
"""

from __future__ import annotations

import abc
import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Iterator

from focusguard.events import ActivityEvent
from focusguard.intervention import InterventionRecord
from focusguard.scoring.engine import ScoreSnapshot
from focusguard.summary import DailySummary

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class StorageError(Exception):
    """A backing store could not complete a read or write."""


class HistoryStore(abc.ABC):
    """Ordered, append-only history with range and bounded-count reads."""

    @abc.abstractmethod
    def append_event(self, event: ActivityEvent) -> None: ...

    def append_events(self, events: Iterable[ActivityEvent]) -> None:
        for event in events:
            self.append_event(event)

    @abc.abstractmethod
    def append_score(self, snapshot: ScoreSnapshot) -> None: ...

    @abc.abstractmethod
    def append_intervention(self, record: InterventionRecord) -> None: ...

    @abc.abstractmethod
    def query_since(self, since: float) -> list[ScoreSnapshot]:
        """Score snapshots with ``timestamp >= since``, oldest first."""

    @abc.abstractmethod
    def query_last_n(self, n: int) -> list[ScoreSnapshot]:
        """The *n* most recent score snapshots, oldest first."""

    @abc.abstractmethod
    def events_since(self, since: float) -> list[ActivityEvent]: ...

    @abc.abstractmethod
    def recent_interventions(self, n: int = 10) -> list[InterventionRecord]:
        """Most recent intervention records, newest first."""

    @abc.abstractmethod
    def purge_older_than(self, days: float, now: float) -> int:
        """Delete events older than *days*.  Returns the number removed."""

    @abc.abstractmethod
    def upsert_daily_summary(self, day: str, summary: DailySummary) -> None: ...

    @abc.abstractmethod
    def daily_summaries(self, days: int = 7) -> list[DailySummary]:
        """The last *days* summaries, oldest first."""


# ---------------------------------------------------------------------------
# In-memory backing
# ---------------------------------------------------------------------------


class MemoryHistoryStore(HistoryStore):
    """Plain lists behind a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[ActivityEvent] = []
        self.scores: list[ScoreSnapshot] = []
        self.interventions: list[InterventionRecord] = []
        self.summaries: dict[str, DailySummary] = {}

    def append_event(self, event: ActivityEvent) -> None:
        with self._lock:
            self.events.append(event)

    def append_score(self, snapshot: ScoreSnapshot) -> None:
        with self._lock:
            self.scores.append(snapshot)

    def append_intervention(self, record: InterventionRecord) -> None:
        with self._lock:
            self.interventions.append(record)

    def query_since(self, since: float) -> list[ScoreSnapshot]:
        with self._lock:
            return [s for s in self.scores if s.timestamp >= since]

    def query_last_n(self, n: int) -> list[ScoreSnapshot]:
        if n <= 0:
            return []
        with self._lock:
            return list(self.scores[-n:])

    def events_since(self, since: float) -> list[ActivityEvent]:
        with self._lock:
            return [e for e in self.events if e.timestamp >= since]

    def recent_interventions(self, n: int = 10) -> list[InterventionRecord]:
        with self._lock:
            return list(reversed(self.interventions[-n:])) if n > 0 else []

    def purge_older_than(self, days: float, now: float) -> int:
        cutoff = now - days * DAY_MS
        with self._lock:
            before = len(self.events)
            self.events = [e for e in self.events if e.timestamp > cutoff]
            return before - len(self.events)

    def upsert_daily_summary(self, day: str, summary: DailySummary) -> None:
        with self._lock:
            self.summaries[day] = summary

    def daily_summaries(self, days: int = 7) -> list[DailySummary]:
        with self._lock:
            keys = sorted(self.summaries)[-days:] if days > 0 else []
            return [self.summaries[k] for k in keys]


# ---------------------------------------------------------------------------
# JSONL directory backing
# ---------------------------------------------------------------------------


def read_jsonl(path: Path) -> Iterator[dict[str, Any]]:
    if not path.exists():
        return
    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                logger.warning("%s:%d: invalid JSON, skipping", path.name, line_num)


class JsonlHistoryStore(HistoryStore):
    """One JSONL file per record kind inside *root*.

    Layout::

        root/events.jsonl
        root/scores.jsonl
        root/interventions.jsonl
        root/daily_summaries.json
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.events_path = self.root / "events.jsonl"
        self.scores_path = self.root / "scores.jsonl"
        self.interventions_path = self.root / "interventions.jsonl"
        self.summaries_path = self.root / "daily_summaries.json"

    def _append(self, path: Path, records: Iterable[dict[str, Any]]) -> None:
        try:
            with self._lock, open(path, "a") as f:
                for record in records:
                    f.write(json.dumps(record) + "\n")
        except OSError as e:
            raise StorageError(f"write to {path} failed: {e}") from e

    def _read(self, path: Path) -> list[dict[str, Any]]:
        # Caller holds self._lock
        try:
            return list(read_jsonl(path))
        except OSError as e:
            raise StorageError(f"read from {path} failed: {e}") from e

    def _load(self, path: Path) -> list[dict[str, Any]]:
        with self._lock:
            return self._read(path)

    def append_event(self, event: ActivityEvent) -> None:
        self._append(self.events_path, [event.to_dict()])

    def append_events(self, events: Iterable[ActivityEvent]) -> None:
        self._append(self.events_path, [e.to_dict() for e in events])

    def append_score(self, snapshot: ScoreSnapshot) -> None:
        self._append(self.scores_path, [snapshot.to_dict()])

    def append_intervention(self, record: InterventionRecord) -> None:
        self._append(self.interventions_path, [record.to_dict()])

    def _scores(self) -> list[ScoreSnapshot]:
        return [ScoreSnapshot.from_dict(d) for d in self._load(self.scores_path)]

    def query_since(self, since: float) -> list[ScoreSnapshot]:
        return [s for s in self._scores() if s.timestamp >= since]

    def query_last_n(self, n: int) -> list[ScoreSnapshot]:
        return self._scores()[-n:] if n > 0 else []

    def events_since(self, since: float) -> list[ActivityEvent]:
        events = []
        for d in self._load(self.events_path):
            event = ActivityEvent.from_dict(d)
            if event is not None and event.timestamp >= since:
                events.append(event)
        return events

    def recent_interventions(self, n: int = 10) -> list[InterventionRecord]:
        if n <= 0:
            return []
        records = [InterventionRecord.from_dict(d) for d in self._load(self.interventions_path)]
        return list(reversed(records[-n:]))

    def purge_older_than(self, days: float, now: float) -> int:
        cutoff = now - days * DAY_MS
        # Held across read and rewrite so concurrent appends are not lost
        with self._lock:
            rows = self._read(self.events_path)
            keep = [d for d in rows if d.get("timestamp", 0) > cutoff]
            try:
                tmp = self.events_path.with_suffix(".jsonl.tmp")
                with open(tmp, "w") as f:
                    for d in keep:
                        f.write(json.dumps(d) + "\n")
                tmp.replace(self.events_path)
            except OSError as e:
                raise StorageError(f"purge of {self.events_path} failed: {e}") from e
        return len(rows) - len(keep)

    def _read_summaries(self) -> dict[str, dict[str, Any]]:
        # Caller holds self._lock
        if not self.summaries_path.exists():
            return {}
        try:
            return json.loads(self.summaries_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"read from {self.summaries_path} failed: {e}") from e

    def _summaries(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return self._read_summaries()

    def upsert_daily_summary(self, day: str, summary: DailySummary) -> None:
        with self._lock:
            data = self._read_summaries()
            data[day] = summary.to_dict()
            try:
                self.summaries_path.write_text(json.dumps(data, indent=2, sort_keys=True))
            except OSError as e:
                raise StorageError(f"write to {self.summaries_path} failed: {e}") from e

    def daily_summaries(self, days: int = 7) -> list[DailySummary]:
        data = self._summaries()
        keys = sorted(data)[-days:] if days > 0 else []
        return [DailySummary.from_dict(data[k]) for k in keys]


# ---------------------------------------------------------------------------
# Batched event writes
# ---------------------------------------------------------------------------


class EventBatcher:
    """Buffers events and writes them to a :class:`HistoryStore` in batches.

    A failed flush puts the batch back in front of anything queued since,
    so delivery is at-least-once and order-preserving.  There is no backoff:
    the batch is simply retried on the next flush.
    """

    def __init__(self, store: HistoryStore) -> None:
        self.store = store
        self._pending: list[ActivityEvent] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[ActivityEvent]:
        with self._lock:
            return list(self._pending)

    def add(self, event: ActivityEvent) -> None:
        with self._lock:
            self._pending.append(event)

    def flush(self) -> int:
        """Write everything pending.  Returns the number of events written."""
        with self._lock:
            batch = self._pending
            self._pending = []
        if not batch:
            return 0
        try:
            self.store.append_events(batch)
        except Exception:
            logger.exception("Failed to flush %d events; re-queued", len(batch))
            with self._lock:
                self._pending = batch + self._pending
            return 0
        return len(batch)
