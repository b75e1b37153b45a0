"""Dashboard assembly and daily housekeeping.

Everything here is a read-side view: hourly score buckets, a coarse
trend, the distraction peak hour, active/idle time, and rule-based
behaviour insights.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from datetime import tzinfo
from typing import Any, Sequence

import numpy as np

from focusguard.events import ActivityEvent, EventType, IdleState
from focusguard.intervention import InterventionRecord
from focusguard.scoring.engine import Category, ScoreSnapshot, local_time
from focusguard.store import HistoryStore
from focusguard.summary import DailySummary, build_daily_summary

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

HISTORY_HOURS = 12
RECENT_INTERVENTIONS = 10
SUMMARY_DAYS = 7
EVENT_RETENTION_DAYS = 30

LONG_SESSION_MIN = 90
TAB_SWITCHES_DAILY_LIMIT = 100


@dataclass(frozen=True)
class BehaviorInsight:
    """One line of dashboard advice."""

    type: str  # warning | alert | info | suggestion | positive
    title: str
    message: str


@dataclass
class DashboardData:
    """Payload returned by :meth:`FocusSession.get_dashboard_data`."""

    current_score: float
    factors: dict[str, dict] = field(default_factory=dict)
    session_duration: str = "0m"
    active_time: str = "0m"
    idle_time: str = "0m"
    tab_switches: int = 0
    hourly_scores: list[dict] = field(default_factory=list)
    interventions: list[dict] = field(default_factory=list)
    daily_summaries: list[dict] = field(default_factory=list)
    trend: int = 0
    distraction_peak: str = "N/A"
    insights: list[dict] = field(default_factory=list)
    idle_state: str = IdleState.ACTIVE.value

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Pieces
# ---------------------------------------------------------------------------


def format_duration(ms: float) -> str:
    """``"2h 5m"`` or ``"45m"``."""
    minutes = int(max(ms, 0) // MINUTE_MS)
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def build_hourly_scores(
    scores: Sequence[ScoreSnapshot],
    tz: tzinfo | None = None,
) -> list[dict]:
    """Group scores by local hour, in order of first appearance."""
    groups: dict[str, list[float]] = {}
    for s in scores:
        key = f"{local_time(s.timestamp, tz).hour}:00"
        groups.setdefault(key, []).append(s.score)
    return [
        {"hour": hour, "avg_score": int(round(float(np.mean(vals)))), "count": len(vals)}
        for hour, vals in groups.items()
    ]


def score_trend(scores: Sequence[ScoreSnapshot]) -> int:
    """Second-half mean minus first-half mean (0 with fewer than 4 scores)."""
    if len(scores) < 4:
        return 0
    arr = np.asarray([s.score for s in scores], dtype=np.float64)
    mid = len(arr) // 2
    return int(round(float(np.mean(arr[mid:]) - np.mean(arr[:mid]))))


def distraction_peak(events: Sequence[ActivityEvent], tz: tzinfo | None = None) -> str:
    """Local hour with the most tab switches, ``"N/A"`` if none."""
    counts: dict[int, int] = {}
    for e in events:
        if e.type is EventType.TAB_SWITCH:
            hour = local_time(e.timestamp, tz).hour
            counts[hour] = counts.get(hour, 0) + 1
    peak_hour, peak_count = 0, 0
    for hour, count in counts.items():
        if count > peak_count:
            peak_hour, peak_count = hour, count
    return f"{peak_hour}:00" if peak_hour > 0 else "N/A"


def idle_ms(events: Sequence[ActivityEvent], now: float) -> float:
    """Time spent idle or locked, from consecutive ``idle_change`` events."""
    changes = [e for e in events if e.type is EventType.IDLE_CHANGE]
    total = 0.0
    for i, change in enumerate(changes):
        if change.get("state") in (IdleState.IDLE.value, IdleState.LOCKED.value):
            end = changes[i + 1].timestamp if i + 1 < len(changes) else now
            total += end - change.timestamp
    return total


def generate_insights(
    snapshot: ScoreSnapshot,
    tab_switches_today: int,
    session_minutes: int,
) -> list[BehaviorInsight]:
    """Rule-based advice; always returns at least one insight."""
    insights: list[BehaviorInsight] = []

    if snapshot.penalty(Category.TAB_SWITCHING) > 15:
        switches = snapshot.raw(Category.TAB_SWITCHING, 0)
        insights.append(BehaviorInsight(
            type="warning",
            title="High Context Switching",
            message=(
                f"You switched tabs {switches} times in the last 2 minutes. "
                "Try grouping related tabs together."
            ),
        ))

    if snapshot.penalty(Category.LATE_NIGHT) > 0:
        insights.append(BehaviorInsight(
            type="alert",
            title="Late-Night Usage",
            message=(
                "Working late affects tomorrow's focus. "
                "Consider wrapping up and setting a Digital Sunset."
            ),
        ))

    if snapshot.penalty(Category.ERRATIC_MOUSE) > 8:
        insights.append(BehaviorInsight(
            type="info",
            title="Erratic Mouse Movement",
            message=(
                "Rapid, unfocused mouse movement detected, a sign of "
                "cognitive overload. Take a brief pause."
            ),
        ))

    if snapshot.penalty(Category.ANXIOUS_SCROLL) > 5:
        insights.append(BehaviorInsight(
            type="info",
            title="Doom Scrolling Detected",
            message=(
                "Rapid scrolling without pausing suggests anxiety browsing. "
                "Try a 30-second breathing exercise."
            ),
        ))

    if session_minutes > LONG_SESSION_MIN and snapshot.penalty(Category.IDLE) == 0:
        insights.append(BehaviorInsight(
            type="suggestion",
            title="Time for a Break",
            message=(
                f"You've been active for {session_minutes} minutes straight. "
                "Even a 2-minute break helps."
            ),
        ))

    if tab_switches_today > TAB_SWITCHES_DAILY_LIMIT:
        insights.append(BehaviorInsight(
            type="warning",
            title="Tab Switches Piling Up",
            message=(
                f"{tab_switches_today} tab switches today. This is above the "
                f"recommended threshold of {TAB_SWITCHES_DAILY_LIMIT}."
            ),
        ))

    if not insights:
        insights.append(BehaviorInsight(
            type="positive",
            title="Great Focus!",
            message="Your digital behavior patterns look healthy right now. Keep it up!",
        ))
    return insights


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def build_dashboard(
    snapshot: ScoreSnapshot,
    window_events: Sequence[ActivityEvent],
    store: HistoryStore,
    session_start: float,
    idle_state: IdleState,
    now: float,
    tz: tzinfo | None = None,
) -> DashboardData:
    """Assemble dashboard data.

    A storage fault degrades to a minimal payload carrying only the current
    score; it is logged, not raised.
    """
    try:
        scores = store.query_since(now - HISTORY_HOURS * HOUR_MS)
        interventions: list[InterventionRecord] = store.recent_interventions(RECENT_INTERVENTIONS)
        summaries: list[DailySummary] = store.daily_summaries(SUMMARY_DAYS)
    except Exception:
        logger.exception("Dashboard history read failed")
        return DashboardData(current_score=snapshot.score)

    session_ms = now - session_start
    session_minutes = int(session_ms // MINUTE_MS)
    idle_minutes = int(idle_ms(window_events, now) // MINUTE_MS)
    active_minutes = max(0, session_minutes - idle_minutes)

    midnight = local_time(now, tz).replace(hour=0, minute=0, second=0, microsecond=0)
    midnight_ms = midnight.timestamp() * 1000.0
    tab_switches_today = sum(
        1 for e in window_events
        if e.type is EventType.TAB_SWITCH and e.timestamp >= midnight_ms
    )

    insights = generate_insights(snapshot, tab_switches_today, session_minutes)

    return DashboardData(
        current_score=snapshot.score,
        factors={c.value: f.to_dict() for c, f in snapshot.factors.items()},
        session_duration=format_duration(session_ms),
        active_time=f"{active_minutes}m",
        idle_time=f"{idle_minutes}m",
        tab_switches=tab_switches_today,
        hourly_scores=build_hourly_scores(scores, tz),
        interventions=[r.to_dict() for r in interventions],
        daily_summaries=[s.to_dict() for s in summaries],
        trend=score_trend(scores),
        distraction_peak=distraction_peak(window_events, tz),
        insights=[asdict(i) for i in insights],
        idle_state=idle_state.value,
    )


def run_daily_cleanup(
    store: HistoryStore,
    now: float,
    session_start: float,
    tz: tzinfo | None = None,
    retention_days: float = EVENT_RETENTION_DAYS,
) -> DailySummary | None:
    """Upsert today's summary from the last 24 h, then purge old events.

    Returns the stored summary, or None when there were no scores.
    """
    day = local_time(now, tz).date().isoformat()
    scores = store.query_since(now - 24 * HOUR_MS)
    summary = None
    if scores:
        summary = build_daily_summary(day, scores, session_duration_ms=now - session_start)
        store.upsert_daily_summary(day, summary)
    deleted = store.purge_older_than(retention_days, now)
    logger.info("Daily cleanup: purged %d old events", deleted)
    return summary
