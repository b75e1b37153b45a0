"""Focus score computation.

``score = clamp(100 - sum(penalties), 0, 100)`` over six weighted
categories.  The engine is a pure function of the event window, the
session's idle state and the clock; it never mutates either.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Any

from focusguard.scoring.factors import (
    FactorResult,
    click_accuracy_factor,
    erratic_mouse_factor,
    idle_factor,
    irregularity_factor,
    late_night_factor,
    rapid_scroll_factor,
    tab_switching_factor,
    typing_fatigue_factor,
)
from focusguard.window import EventWindow

if TYPE_CHECKING:
    from focusguard.session import SessionState

SCORE_MIN = 0.0
SCORE_MAX = 100.0


class Category(str, Enum):
    """Penalty categories (scored and advisory)."""

    TAB_SWITCHING = "tab_switching"
    IDLE = "idle"
    LATE_NIGHT = "late_night"
    ERRATIC_MOUSE = "erratic_mouse"
    ANXIOUS_SCROLL = "anxious_scroll"
    IRREGULARITY = "irregularity"
    # advisory
    TYPING_FATIGUE = "typing_fatigue"
    CLICK_ACCURACY = "click_accuracy"


SCORED_CATEGORIES = (
    Category.TAB_SWITCHING,
    Category.IDLE,
    Category.LATE_NIGHT,
    Category.ERRATIC_MOUSE,
    Category.ANXIOUS_SCROLL,
    Category.IRREGULARITY,
)

ADVISORY_CATEGORIES = (Category.TYPING_FATIGUE, Category.CLICK_ACCURACY)


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


@dataclass(frozen=True)
class ScoreSnapshot:
    """Result of one scoring tick.  Immutable and append-only."""

    timestamp: float  # ms
    score: float  # 0-100
    factors: dict[Category, FactorResult]
    advisory: dict[Category, FactorResult] = field(default_factory=dict)

    @property
    def total_penalty(self) -> float:
        return sum(f.penalty for f in self.factors.values())

    def penalty(self, category: Category) -> float:
        """Penalty for *category* (scored or advisory), 0 when absent."""
        result = self.factors.get(category) or self.advisory.get(category)
        return result.penalty if result is not None else 0.0

    def raw(self, category: Category, default: Any = None) -> Any:
        result = self.factors.get(category) or self.advisory.get(category)
        if result is None or result.raw_metric is None:
            return default
        return result.raw_metric

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "score": self.score,
            "factors": {c.value: f.to_dict() for c, f in self.factors.items()},
            "advisory": {c.value: f.to_dict() for c, f in self.advisory.items()},
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ScoreSnapshot:
        return cls(
            timestamp=d["timestamp"],
            score=d["score"],
            factors={Category(k): FactorResult.from_dict(v) for k, v in d["factors"].items()},
            advisory={
                Category(k): FactorResult.from_dict(v)
                for k, v in d.get("advisory", {}).items()
            },
        )

    def __repr__(self) -> str:
        parts = ", ".join(
            f"{c.value}={f.penalty:g}" for c, f in self.factors.items() if f.penalty
        )
        return f"ScoreSnapshot(score={self.score:g}, t={self.timestamp:.0f}, {parts or 'no penalties'})"


def local_time(now: float, tz: tzinfo | None = None) -> datetime:
    """Wall-clock time for *now* (ms) in *tz* (``None`` = system zone)."""
    if tz is None:
        return datetime.fromtimestamp(now / 1000.0).astimezone()
    return datetime.fromtimestamp(now / 1000.0, tz=tz)


def compute_factors(
    window: EventWindow,
    state: SessionState,
    now: float,
) -> tuple[dict[Category, FactorResult], dict[Category, FactorResult]]:
    """Return ``(scored, advisory)`` factor maps."""
    local = local_time(now, state.tz)
    scored = {
        Category.TAB_SWITCHING: tab_switching_factor(window, now),
        Category.IDLE: idle_factor(state.idle_state, state.idle_since, now),
        Category.LATE_NIGHT: late_night_factor(local),
        Category.ERRATIC_MOUSE: erratic_mouse_factor(window, now),
        Category.ANXIOUS_SCROLL: rapid_scroll_factor(window, now),
        Category.IRREGULARITY: irregularity_factor(local),
    }
    advisory = {
        Category.TYPING_FATIGUE: typing_fatigue_factor(window, now),
        Category.CLICK_ACCURACY: click_accuracy_factor(window, now),
    }
    return scored, advisory


def score_window(
    window: EventWindow,
    state: SessionState,
    now: float,
) -> ScoreSnapshot:
    """Compute a :class:`ScoreSnapshot` for time *now* (ms).

    Args:
        window: Retained activity events.
        state: Session state (idle state, idle start, timezone).
        now: Evaluation time in ms.
    """
    scored, advisory = compute_factors(window, state, now)
    total = sum(f.penalty for f in scored.values())
    return ScoreSnapshot(
        timestamp=now,
        score=clamp_score(SCORE_MAX - total),
        factors=scored,
        advisory=advisory,
    )


def score_band(score: float) -> str:
    """Coarse colour band for badges: green / amber / orange / red."""
    if score >= 70:
        return "green"
    if score >= 50:
        return "amber"
    if score >= 30:
        return "orange"
    return "red"
