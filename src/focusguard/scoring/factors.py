"""Penalty factor computation.

Each function looks at the event window (and, where needed, the session's
idle state and the local clock) and returns a :class:`FactorResult` whose
penalty is capped at the category weight.

Weights (sum to 100):
    Tab / context switching   30
    Idle / locked             20
    Late-night usage          15
    Erratic pointer motion    15
    Rapid scrolling           10
    Off-hours irregularity    10

Two advisory factors (typing fatigue, click hesitation) are computed the
same way but never enter the score.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from focusguard.events import EventType, IdleState
from focusguard.window import EventWindow

# ---------------------------------------------------------------------------
# Weights
# ---------------------------------------------------------------------------

W_TAB = 30
W_IDLE = 20
W_LATE_NIGHT = 15
W_MOUSE = 15
W_SCROLL = 10
W_IRREGULARITY = 10

# Advisory only
W_TYPING = 20
W_CLICK = 15

# ---------------------------------------------------------------------------
# Lookback windows and thresholds
# ---------------------------------------------------------------------------

RECENT_MS = 2 * 60 * 1000
MINUTE_MS = 60 * 1000

TAB_PENALTY_PER_SWITCH = 3.0
TAB_CREATION_WEIGHT = 0.5

IDLE_GRACE_MIN = 5.0
IDLE_PENALTY_PER_MIN = 2.0
LOCKED_PENALTY = 10

LATE_NIGHT_PARTIAL = 8
IRREGULARITY_PARTIAL = 5

MOUSE_PARTIAL = 8
MOUSE_MINOR = 3

SCROLL_PENALTY_PER_RAPID = 2.0

RawMetric = Union[float, int, str, None]


@dataclass(frozen=True)
class FactorResult:
    """One category's contribution to the total penalty."""

    penalty: float  # 0..max_weight
    raw_metric: RawMetric  # the observation the penalty was derived from
    max_weight: float

    def __post_init__(self) -> None:
        if not 0 <= self.penalty <= self.max_weight:
            raise ValueError(
                f"penalty {self.penalty} outside [0, {self.max_weight}]"
            )

    def to_dict(self) -> dict:
        return {
            "penalty": self.penalty,
            "raw_metric": self.raw_metric,
            "max_weight": self.max_weight,
        }

    @classmethod
    def from_dict(cls, d: dict) -> FactorResult:
        return cls(
            penalty=d["penalty"],
            raw_metric=d.get("raw_metric"),
            max_weight=d["max_weight"],
        )


def _recent(window: EventWindow, event_type: EventType, now: float):
    """Events of *event_type* in ``(now - RECENT_MS, now]``."""
    start = now - RECENT_MS
    return window.query(lambda e: e.type is event_type and start < e.timestamp <= now)


# ---------------------------------------------------------------------------
# Scored categories
# ---------------------------------------------------------------------------


def tab_switching_factor(window: EventWindow, now: float) -> FactorResult:
    """``min(3 * (switches + 0.5 * creations), 30)`` over the last 2 minutes.

    ``raw_metric`` is the switch count.
    """
    switches = _recent(window, EventType.TAB_SWITCH, now).count()
    creations = _recent(window, EventType.TAB_CREATED, now).count()
    activity = switches + creations * TAB_CREATION_WEIGHT
    penalty = min(activity * TAB_PENALTY_PER_SWITCH, W_TAB)
    return FactorResult(penalty=penalty, raw_metric=switches, max_weight=W_TAB)


def idle_factor(
    idle_state: IdleState,
    idle_since: float | None,
    now: float,
) -> FactorResult:
    """Extended idle or a locked screen.

    Idle longer than 5 minutes costs 2 points per idle minute (up to 20);
    a locked screen is a flat 10.  ``raw_metric`` is the idle state.
    """
    penalty = 0.0
    if idle_state is IdleState.IDLE and idle_since is not None:
        idle_min = (now - idle_since) / MINUTE_MS
        if idle_min > IDLE_GRACE_MIN:
            penalty = min(idle_min * IDLE_PENALTY_PER_MIN, W_IDLE)
    elif idle_state is IdleState.LOCKED:
        penalty = LOCKED_PENALTY
    return FactorResult(penalty=penalty, raw_metric=idle_state.value, max_weight=W_IDLE)


def late_night_factor(local: datetime) -> FactorResult:
    """23:00-04:59 is full penalty, 22:00 and 05:00 hours partial."""
    hour = local.hour
    if hour >= 23 or hour <= 4:
        penalty = W_LATE_NIGHT
    elif hour == 22 or hour == 5:
        penalty = LATE_NIGHT_PARTIAL
    else:
        penalty = 0
    return FactorResult(penalty=penalty, raw_metric=hour, max_weight=W_LATE_NIGHT)


def erratic_mouse_factor(window: EventWindow, now: float) -> FactorResult:
    """Agitated pointer motion over the last 2 minutes.

    ``raw_metric`` is the total number of direction changes.
    """
    events = list(_recent(window, EventType.MOUSE_ACTIVITY, now))
    if not events:
        return FactorResult(penalty=0, raw_metric=0, max_weight=W_MOUSE)

    direction_changes = sum(e.get("direction_changes") for e in events)
    avg_speed = sum(e.get("speed") for e in events) / len(events)

    if direction_changes > 20 and avg_speed > 500:
        penalty = W_MOUSE
    elif direction_changes > 10 or avg_speed > 300:
        penalty = MOUSE_PARTIAL
    elif direction_changes > 5:
        penalty = MOUSE_MINOR
    else:
        penalty = 0
    return FactorResult(penalty=penalty, raw_metric=direction_changes, max_weight=W_MOUSE)


def rapid_scroll_factor(window: EventWindow, now: float) -> FactorResult:
    """``min(2 * rapid_scrolls, 10)`` over the last 2 minutes."""
    rapid = sum(e.get("rapid_scrolls") for e in _recent(window, EventType.SCROLL_ACTIVITY, now))
    penalty = max(0.0, min(rapid * SCROLL_PENALTY_PER_RAPID, W_SCROLL))
    return FactorResult(penalty=penalty, raw_metric=rapid, max_weight=W_SCROLL)


def irregularity_factor(local: datetime) -> FactorResult:
    """Weekday work outside 07:00-21:59 (full) or 08:00-20:59 (partial)."""
    hour = local.hour
    penalty = 0
    if local.weekday() < 5:
        if hour < 7 or hour > 21:
            penalty = W_IRREGULARITY
        elif hour < 8 or hour > 20:
            penalty = IRREGULARITY_PARTIAL
    return FactorResult(penalty=penalty, raw_metric=hour, max_weight=W_IRREGULARITY)


# ---------------------------------------------------------------------------
# Advisory factors
# ---------------------------------------------------------------------------


def typing_fatigue_factor(window: EventWindow, now: float) -> FactorResult:
    """Keystroke rhythm variance plus error rate from the latest typing report."""
    latest = _recent(window, EventType.TYPING_METRICS, now).last()
    if latest is None or not latest.get("fatigued", False):
        return FactorResult(penalty=0, raw_metric=None, max_weight=W_TYPING)
    variance_score = min(latest.get("variance") / 10000.0, 1.0)
    error_score = min(latest.get("error_rate") * 5.0, 1.0)
    penalty = max(0.0, min((variance_score + error_score) * 10.0, W_TYPING))
    return FactorResult(
        penalty=penalty, raw_metric=latest.get("error_rate"), max_weight=W_TYPING
    )


def click_accuracy_factor(window: EventWindow, now: float) -> FactorResult:
    """Click hesitation rate from the latest click report."""
    latest = _recent(window, EventType.CLICK_ACCURACY, now).last()
    if latest is None or not latest.get("fatigued", False):
        return FactorResult(penalty=0, raw_metric=None, max_weight=W_CLICK)
    rate = latest.get("hesitation_rate")
    penalty = max(0.0, min(rate * 75.0, W_CLICK))
    return FactorResult(penalty=penalty, raw_metric=rate, max_weight=W_CLICK)
