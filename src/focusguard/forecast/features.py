"""Training snapshots and the 11-feature vectors the forecaster consumes.

Each snapshot carries seven behavioural sub-scores, four physiological
sub-scores and the exhaustion score (0-100, higher is better).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import numpy as np

from focusguard.scoring.engine import Category, ScoreSnapshot

BEHAVIORAL_FEATURES = (
    "tab_switch_score",
    "typing_fatigue_score",
    "click_accuracy_score",
    "mouse_erratic_score",
    "scroll_anxiety_score",
    "time_of_day_score",
    "idle_time_score",
)

PHYSIOLOGICAL_FEATURES = (
    "eye_fatigue_score",
    "blink_rate_score",
    "ear_score",
    "stress_level",
)

FEATURE_NAMES = BEHAVIORAL_FEATURES + PHYSIOLOGICAL_FEATURES
N_FEATURES = len(FEATURE_NAMES)  # 11

# z-score normalisation parameters
FEATURE_MEAN = np.full(N_FEATURES, 50.0)
FEATURE_STD = np.full(N_FEATURES, 20.0)


def _vector(values: Sequence[float] | Mapping[str, float], names: Sequence[str]) -> tuple[float, ...]:
    if isinstance(values, Mapping):
        return tuple(float(values.get(n) or 0.0) for n in names)
    vals = tuple(float(v) for v in values)
    if len(vals) != len(names):
        raise ValueError(f"expected {len(names)} values, got {len(vals)}")
    return vals


@dataclass(frozen=True)
class TrainingSnapshot:
    """One minute of behavioural + physiological state."""

    timestamp: float  # ms
    behavioral: tuple[float, ...]
    physiological: tuple[float, ...] = field(default=(0.0,) * len(PHYSIOLOGICAL_FEATURES))
    exhaustion_score: float = 100.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "behavioral", _vector(self.behavioral, BEHAVIORAL_FEATURES))
        object.__setattr__(
            self, "physiological", _vector(self.physiological, PHYSIOLOGICAL_FEATURES)
        )

    @property
    def features(self) -> tuple[float, ...]:
        return self.behavioral + self.physiological

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "behavioral": dict(zip(BEHAVIORAL_FEATURES, self.behavioral)),
            "physiological": dict(zip(PHYSIOLOGICAL_FEATURES, self.physiological)),
            "exhaustion_score": self.exhaustion_score,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> TrainingSnapshot:
        return cls(
            timestamp=d["timestamp"],
            behavioral=d.get("behavioral") or {},
            physiological=d.get("physiological") or {},
            exhaustion_score=d.get("exhaustion_score", 100.0),
        )

    @classmethod
    def from_score(cls, snap: ScoreSnapshot) -> TrainingSnapshot:
        """Derive behavioural sub-scores from a score snapshot.

        Each category penalty is rescaled to 0-100 of its weight.
        Physiological features are unavailable and left at 0.
        """

        def pct(category: Category) -> float:
            result = snap.factors.get(category) or snap.advisory.get(category)
            if result is None or not result.max_weight:
                return 0.0
            return result.penalty / result.max_weight * 100.0

        late = pct(Category.LATE_NIGHT)
        irregular = pct(Category.IRREGULARITY)
        return cls(
            timestamp=snap.timestamp,
            behavioral=(
                pct(Category.TAB_SWITCHING),
                pct(Category.TYPING_FATIGUE),
                pct(Category.CLICK_ACCURACY),
                pct(Category.ERRATIC_MOUSE),
                pct(Category.ANXIOUS_SCROLL),
                max(late, irregular),
                pct(Category.IDLE),
            ),
            exhaustion_score=snap.score,
        )


def feature_matrix(snapshots: Sequence[TrainingSnapshot]) -> np.ndarray:
    """Stack snapshots into an ``(n, 11)`` float array."""
    if not snapshots:
        return np.zeros((0, N_FEATURES))
    return np.asarray([s.features for s in snapshots], dtype=np.float64)


def normalize(features: np.ndarray) -> np.ndarray:
    """z-score features with the fixed mean/std."""
    return (np.asarray(features, dtype=np.float64) - FEATURE_MEAN) / FEATURE_STD


def scores_of(snapshots: Sequence[TrainingSnapshot]) -> np.ndarray:
    return np.asarray([s.exhaustion_score for s in snapshots], dtype=np.float64)
