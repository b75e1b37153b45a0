"""Daily summary aggregator.

Reduces a day's worth of score snapshots into a single
JSON-serializable :class:`DailySummary`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, fields
from datetime import date
from typing import Any, Sequence

import numpy as np

from focusguard.scoring.engine import ScoreSnapshot


@dataclass
class DailySummary:
    """A single day's focus report."""

    date: str  # ISO date string, e.g. "2026-10-19"
    avg_score: float = 0.0
    min_score: float = 0.0
    max_score: float = 0.0
    total_scores: int = 0
    session_duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict (JSON-friendly)."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DailySummary:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})

    def __repr__(self) -> str:
        return (
            f"DailySummary({self.date}: "
            f"avg={self.avg_score:.0f}, "
            f"min={self.min_score:.0f}, "
            f"max={self.max_score:.0f}, "
            f"n={self.total_scores})"
        )


def build_daily_summary(
    day: date | str,
    scores: Sequence[ScoreSnapshot],
    session_duration_ms: float = 0.0,
) -> DailySummary:
    """Build a daily summary from the day's score snapshots.

    Args:
        day: The date for this summary.
        scores: Snapshots recorded during the day.
        session_duration_ms: Length of the current session.

    Returns:
        A populated DailySummary (zeros when *scores* is empty).
    """
    date_str = day if isinstance(day, str) else day.isoformat()
    summary = DailySummary(date=date_str, session_duration_ms=session_duration_ms)
    if not scores:
        return summary

    arr = np.asarray([s.score for s in scores], dtype=np.float64)
    summary.avg_score = float(round(float(np.mean(arr))))
    summary.min_score = float(np.min(arr))
    summary.max_score = float(np.max(arr))
    summary.total_scores = len(arr)
    return summary
