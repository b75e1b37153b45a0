"""Near-future score forecasting.

Predicts the exhaustion score 30 minutes ahead from a time-ordered
history of :class:`TrainingSnapshot` (one per minute):

- fewer than 60 points (or no fitted model): least-squares line over
  ``index -> score``, extrapolated 30 steps past the end
- 60 or more points: the sequence regressor over the last 60 normalised
  feature vectors

From the predicted and current scores it derives confidence, minutes to
the exhaustion threshold, a trend class, a risk level and a
recommendation.  Data scarcity never raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

import numpy as np
from scipy import stats

from focusguard.forecast.features import (
    TrainingSnapshot,
    feature_matrix,
    normalize,
    scores_of,
)
from focusguard.forecast.regressor import SEQUENCE_LENGTH, SequenceRegressor

HORIZON_MIN = 30
EXHAUSTION_THRESHOLD = 40.0
CONFIDENCE_WINDOW = 30

MODEL_CONFIDENCE_MIN = 0.5
MODEL_CONFIDENCE_MAX = 0.95
FALLBACK_CONFIDENCE_MAX = 0.5
STD_SCALE = 50.0


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class PredictionResult:
    """Forecast for ``HORIZON_MIN`` minutes ahead."""

    predicted_score: float
    confidence: float  # 0-1
    time_to_threshold: float  # minutes, math.inf if never
    trend: Trend
    risk_level: RiskLevel
    recommendation: str
    model_based: bool = False

    def to_dict(self) -> dict[str, Any]:
        ttt = None if math.isinf(self.time_to_threshold) else self.time_to_threshold
        return {
            "predicted_score": self.predicted_score,
            "confidence": self.confidence,
            "time_to_threshold": ttt,
            "trend": self.trend.value,
            "risk_level": self.risk_level.value,
            "recommendation": self.recommendation,
            "model_based": self.model_based,
        }

    def __repr__(self) -> str:
        ttt = "inf" if math.isinf(self.time_to_threshold) else f"{self.time_to_threshold:.0f}min"
        return (
            f"PredictionResult(predicted={self.predicted_score:.0f}, "
            f"conf={self.confidence:.2f}, ttt={ttt}, "
            f"{self.trend.value}/{self.risk_level.value})"
        )


@dataclass(frozen=True)
class Insight:
    """Human-readable wrapper around a prediction."""

    type: str  # alert | warning | positive | suggestion | info
    title: str
    message: str
    prediction: PredictionResult
    actions: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "prediction": self.prediction.to_dict(),
            "actions": list(self.actions),
        }


# ---------------------------------------------------------------------------
# Decision rules
# ---------------------------------------------------------------------------


def calculate_confidence(scores: Sequence[float]) -> float:
    """Confidence from the spread of the last 30 scores.

    ``clamp(1 - std / 50, 0.5, 0.95)``: more variance, less confidence.
    """
    recent = np.asarray(scores[-CONFIDENCE_WINDOW:], dtype=np.float64)
    if len(recent) == 0:
        return MODEL_CONFIDENCE_MIN
    std = float(np.std(recent))
    conf = max(MODEL_CONFIDENCE_MIN, min(MODEL_CONFIDENCE_MAX, 1.0 - std / STD_SCALE))
    return round(conf, 2)


def fallback_confidence(n: int) -> float:
    return round(min(FALLBACK_CONFIDENCE_MAX, n / SEQUENCE_LENGTH), 2)


def time_to_threshold(
    current: float,
    predicted: float,
    threshold: float = EXHAUSTION_THRESHOLD,
    horizon_min: float = HORIZON_MIN,
) -> float:
    """Minutes until the score crosses *threshold* at the predicted rate."""
    if current <= threshold:
        return 0.0
    if predicted >= current:
        return math.inf
    decline_per_min = (current - predicted) / horizon_min
    return float(max(0, round((current - threshold) / decline_per_min)))


def determine_trend(current: float, predicted: float) -> Trend:
    diff = predicted - current
    if diff > 5:
        return Trend.IMPROVING
    if diff > -5:
        return Trend.STABLE
    if diff > -15:
        return Trend.DECLINING
    return Trend.CRITICAL


def determine_risk(predicted: float, ttt: float) -> RiskLevel:
    if ttt < 15 or predicted < 20:
        return RiskLevel.CRITICAL
    if ttt < 30 or predicted < 40:
        return RiskLevel.HIGH
    if predicted < 60:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommend(predicted: float, trend: Trend, ttt: float) -> str:
    """Deterministic recommendation text, first matching row wins."""
    if ttt < 15:
        return "Take a break now: exhaustion is likely within 15 minutes."
    if ttt < 30:
        return "Schedule a break within 30 minutes to prevent exhaustion."
    if trend is Trend.CRITICAL:
        return "Critical decline detected: an immediate intervention is recommended."
    if trend is Trend.DECLINING:
        return "Declining trend detected: plan breaks proactively."
    if predicted < EXHAUSTION_THRESHOLD:
        return "Energy levels are dropping: consider a recovery session."
    if trend is Trend.IMPROVING:
        return "Recovery trend detected: maintain the current pace."
    return "Optimal state: keep up the good work."


NOT_ENOUGH_DATA = "Not enough data for a prediction yet. Keep tracking to build a baseline."


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ForecastEngine:
    """Forecaster with graceful degradation when data or a model is missing.

    Args:
        regressor: A fitted (or not yet fitted) :class:`SequenceRegressor`.
    """

    def __init__(self, regressor: SequenceRegressor | None = None) -> None:
        self.regressor = regressor

    @property
    def model_ready(self) -> bool:
        return self.regressor is not None and self.regressor.is_fitted

    def predict(self, history: Sequence[TrainingSnapshot]) -> PredictionResult:
        if len(history) == 0:
            return self._empty_prediction()
        if len(history) < SEQUENCE_LENGTH or not self.model_ready:
            return self._linear_prediction(history)
        return self._model_prediction(history)

    def _finish(
        self,
        current: float,
        predicted: float,
        confidence: float,
        model_based: bool,
    ) -> PredictionResult:
        ttt = time_to_threshold(current, predicted)
        trend = determine_trend(current, predicted)
        return PredictionResult(
            predicted_score=predicted,
            confidence=confidence,
            time_to_threshold=ttt,
            trend=trend,
            risk_level=determine_risk(predicted, ttt),
            recommendation=recommend(predicted, trend, ttt),
            model_based=model_based,
        )

    def _empty_prediction(self) -> PredictionResult:
        return PredictionResult(
            predicted_score=100.0,
            confidence=0.0,
            time_to_threshold=math.inf,
            trend=Trend.STABLE,
            risk_level=RiskLevel.LOW,
            recommendation=NOT_ENOUGH_DATA,
        )

    def _linear_prediction(self, history: Sequence[TrainingSnapshot]) -> PredictionResult:
        scores = scores_of(history)
        n = len(scores)
        if n >= 2:
            fit = stats.linregress(np.arange(n, dtype=np.float64), scores)
            slope, intercept = float(fit.slope), float(fit.intercept)
        else:
            slope, intercept = 0.0, float(scores[0])

        raw = slope * (n + HORIZON_MIN) + intercept
        predicted = float(round(max(0.0, min(100.0, raw))))
        return self._finish(float(scores[-1]), predicted, fallback_confidence(n), model_based=False)

    def _model_prediction(self, history: Sequence[TrainingSnapshot]) -> PredictionResult:
        recent = list(history[-SEQUENCE_LENGTH:])
        window = normalize(feature_matrix(recent))
        value = float(self.regressor.predict(window[np.newaxis, ...])[0])
        predicted = float(round(max(0.0, min(1.0, value)) * 100))
        scores = scores_of(history)
        return self._finish(
            float(scores[-1]), predicted, calculate_confidence(scores), model_based=True
        )

    # -- insights ----------------------------------------------------------

    def generate_insight(self, history: Sequence[TrainingSnapshot]) -> Insight:
        prediction = self.predict(history)
        current = history[-1].exhaustion_score if history else 100.0
        return Insight(
            type=_insight_type(prediction),
            title=_insight_title(prediction),
            message=_insight_message(prediction, current),
            prediction=prediction,
            actions=_insight_actions(prediction),
        )


def _insight_type(p: PredictionResult) -> str:
    if p.risk_level is RiskLevel.CRITICAL:
        return "alert"
    if p.risk_level is RiskLevel.HIGH:
        return "warning"
    if p.trend is Trend.IMPROVING:
        return "positive"
    if p.risk_level is RiskLevel.MEDIUM:
        return "suggestion"
    return "info"


def _insight_title(p: PredictionResult) -> str:
    if p.risk_level is RiskLevel.CRITICAL:
        return "Critical: Immediate Action Required"
    if p.risk_level is RiskLevel.HIGH:
        return "Warning: Exhaustion Approaching"
    if p.trend is Trend.IMPROVING:
        return "Positive: Energy Recovery Detected"
    if p.trend is Trend.DECLINING:
        return "Alert: Declining Energy Trend"
    return "Status: Energy Levels Stable"


def _insight_message(p: PredictionResult, current: float) -> str:
    msg = f"Your current exhaustion score is {current:.0f}/100. "
    if not math.isinf(p.time_to_threshold):
        msg += f"You are forecast to reach the exhaustion threshold in {p.time_to_threshold:.0f} minutes. "
    elif p.predicted_score > current:
        msg += f"Forecast: improvement to {p.predicted_score:.0f}/100 in {HORIZON_MIN} minutes. "
    else:
        msg += f"Forecast: {p.predicted_score:.0f}/100 in {HORIZON_MIN} minutes. "
    return msg + p.recommendation


def _insight_actions(p: PredictionResult) -> tuple[str, ...]:
    if p.risk_level in (RiskLevel.CRITICAL, RiskLevel.HIGH):
        return (
            "Take a 10-minute recovery break immediately",
            "Enable do-not-disturb mode",
            "Practice breathing exercises",
        )
    if p.trend is Trend.DECLINING:
        return (
            "Schedule a break in the next 30 minutes",
            "Reduce tab switching frequency",
            "Check your posture and screen distance",
        )
    if p.trend is Trend.IMPROVING:
        return ("Maintain current work rhythm", "Stay hydrated")
    return ("Continue monitoring your metrics", "Plan breaks every 60-90 minutes")
