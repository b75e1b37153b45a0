"""Exhaustion forecasting.

Modules:
    features  -- TrainingSnapshot and the 11-feature vectors
    regressor -- Sequence regressor interface and the ridge implementation
    engine    -- 30-minute-ahead prediction, risk and insights
    trainer   -- Snapshot store, training windows, synthetic pre-training
    worker    -- Service facade and async request/response worker
"""

from focusguard.forecast.engine import (
    ForecastEngine,
    Insight,
    PredictionResult,
    RiskLevel,
    Trend,
)
from focusguard.forecast.features import TrainingSnapshot
from focusguard.forecast.regressor import RidgeSequenceRegressor, SequenceRegressor
from focusguard.forecast.trainer import (
    ModelTrainer,
    TrainingResult,
    TrainingSession,
    TrainingSnapshotStore,
    generate_synthetic_data,
)
from focusguard.forecast.worker import ForecastService, ForecastWorker, RequestKind

__all__ = [
    "ForecastEngine",
    "ForecastService",
    "ForecastWorker",
    "Insight",
    "ModelTrainer",
    "PredictionResult",
    "RequestKind",
    "RidgeSequenceRegressor",
    "RiskLevel",
    "SequenceRegressor",
    "TrainingResult",
    "TrainingSession",
    "TrainingSnapshot",
    "TrainingSnapshotStore",
    "Trend",
    "generate_synthetic_data",
]
