"""Shared fixtures and helpers for the focusguard test suite."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from focusguard.events import ActivityEvent, EventType, parse_event
from focusguard.scoring.engine import Category, ScoreSnapshot
from focusguard.scoring.factors import FactorResult
from focusguard.session import FocusSession, SessionState
from focusguard.store import MemoryHistoryStore
from focusguard.window import EventWindow


MINUTE_MS = 60 * 1000

# Wednesday 2026-10-14 12:00 UTC: a weekday midday with no clock penalties
NOON_MS = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc).timestamp() * 1000.0


def utc_ms(year: int, month: int, day: int, hour: int, minute: int = 0) -> float:
    """Milliseconds since the epoch for a UTC wall-clock time."""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc).timestamp() * 1000.0


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------


def make_event(event_type: EventType | str, timestamp: float, **payload) -> ActivityEvent:
    """Build a validated event, failing the test if it does not parse."""
    event = parse_event(event_type, timestamp, payload)
    assert event is not None, f"event did not parse: {event_type} {payload}"
    return event


def fill_window(events: list[ActivityEvent], now: float) -> EventWindow:
    window = EventWindow()
    for e in events:
        window.ingest(e, now)
    return window


def make_state(tz=timezone.utc, start: float = NOON_MS - 10 * MINUTE_MS, **kwargs) -> SessionState:
    return SessionState(session_start=start, tz=tz, **kwargs)


# ---------------------------------------------------------------------------
# Snapshot helpers
# ---------------------------------------------------------------------------


_WEIGHTS = {
    Category.TAB_SWITCHING: 30,
    Category.IDLE: 20,
    Category.LATE_NIGHT: 15,
    Category.ERRATIC_MOUSE: 15,
    Category.ANXIOUS_SCROLL: 10,
    Category.IRREGULARITY: 10,
    Category.TYPING_FATIGUE: 20,
    Category.CLICK_ACCURACY: 15,
}


def make_snapshot(
    score: float | None = None,
    timestamp: float = NOON_MS,
    raw: dict[Category, object] | None = None,
    **penalties: float,
) -> ScoreSnapshot:
    """Build a ScoreSnapshot from per-category penalties.

    Keyword names are Category values (``tab_switching=12``).  The score
    defaults to ``100 - sum(scored penalties)``.
    """
    raw = raw or {}
    scored, advisory = {}, {}
    for cat, weight in _WEIGHTS.items():
        result = FactorResult(
            penalty=penalties.get(cat.value, 0),
            raw_metric=raw.get(cat),
            max_weight=weight,
        )
        if cat in (Category.TYPING_FATIGUE, Category.CLICK_ACCURACY):
            advisory[cat] = result
        else:
            scored[cat] = result
    if score is None:
        score = max(0.0, 100.0 - sum(f.penalty for f in scored.values()))
    return ScoreSnapshot(timestamp=timestamp, score=score, factors=scored, advisory=advisory)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def write_jsonl(path: Path, entries: list[dict]) -> Path:
    """Write a list of dicts as a JSONL file."""
    with open(path, "w") as f:
        for entry in entries:
            f.write(json.dumps(entry) + "\n")
    return path


def make_log_entry(event_type: str, timestamp: float, **payload) -> dict:
    return {"type": event_type, "timestamp": timestamp, "payload": payload}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(NOON_MS)


@pytest.fixture
def store() -> MemoryHistoryStore:
    return MemoryHistoryStore()


@pytest.fixture
def notices() -> list:
    return []


@pytest.fixture
def session(store, clock, notices) -> FocusSession:
    return FocusSession(store=store, notify=notices.append, tz=timezone.utc, clock=clock)
