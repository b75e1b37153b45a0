"""Training data collection and regressor fitting.

Snapshots are kept for 7 days (optionally mirrored to JSONL).  Training
turns them into sliding windows: 60 minutes of features in, the score 30
minutes after the window end (scaled to 0-1) out.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Callable, Iterable

import numpy as np

from focusguard.forecast.features import (
    TrainingSnapshot,
    feature_matrix,
    normalize,
)
from focusguard.forecast.regressor import (
    SEQUENCE_LENGTH,
    RidgeSequenceRegressor,
    SequenceRegressor,
)
from focusguard.session import now_ms
from focusguard.store import DAY_MS, StorageError, read_jsonl

logger = logging.getLogger(__name__)

TARGET_OFFSET = 90  # 60 steps of input + 30 steps ahead
MIN_TRAINING_SNAPSHOTS = 200
TRAIN_FRACTION = 0.8
RETENTION_DAYS = 7
RETRAIN_AFTER_DAYS = 7
RETRAIN_NEW_POINTS = 500
PRETRAIN_SAMPLES = 2000
MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class TrainingSession:
    timestamp: float
    final_loss: float
    final_mae: float
    data_points: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TrainingSession:
        return cls(
            timestamp=float(d["timestamp"]),
            final_loss=float(d.get("final_loss", 0.0)),
            final_mae=float(d.get("final_mae", 0.0)),
            data_points=int(d.get("data_points", 0)),
        )


@dataclass(frozen=True)
class TrainingResult:
    success: bool
    final_loss: float | None = None
    final_mae: float | None = None
    data_points: int = 0
    val_loss: float | None = None
    val_mae: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Snapshot store
# ---------------------------------------------------------------------------


class TrainingSnapshotStore:
    """Snapshots keyed by timestamp plus the training history.

    Writing a snapshot with an existing timestamp replaces it.  When *root*
    is given, ``metrics.jsonl`` and ``training_history.jsonl`` inside it
    mirror the in-memory state.
    """

    def __init__(self, root: str | Path | None = None, retention_days: float = RETENTION_DAYS) -> None:
        self.retention_days = retention_days
        self._lock = threading.Lock()
        self._snapshots: dict[float, TrainingSnapshot] = {}
        self.sessions: list[TrainingSession] = []
        self.root = Path(root) if root is not None else None
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
            self._load()

    @property
    def metrics_path(self) -> Path | None:
        return self.root / "metrics.jsonl" if self.root else None

    @property
    def history_path(self) -> Path | None:
        return self.root / "training_history.jsonl" if self.root else None

    def _load(self) -> None:
        try:
            for d in read_jsonl(self.metrics_path):
                snap = TrainingSnapshot.from_dict(d)
                self._snapshots[snap.timestamp] = snap
            self.sessions = [TrainingSession.from_dict(d) for d in read_jsonl(self.history_path)]
        except (OSError, KeyError, ValueError) as e:
            raise StorageError(f"could not load training data from {self.root}: {e}") from e

    def _write_lines(self, path: Path, records: Iterable[dict[str, Any]], mode: str) -> None:
        try:
            with open(path, mode) as f:
                for record in records:
                    f.write(json.dumps(record) + "\n")
        except OSError as e:
            raise StorageError(f"write to {path} failed: {e}") from e

    def __len__(self) -> int:
        return len(self._snapshots)

    def add(self, snapshot: TrainingSnapshot, now: float | None = None) -> int:
        return self.add_many([snapshot], now)

    def add_many(self, snapshots: Iterable[TrainingSnapshot], now: float | None = None) -> int:
        """Store *snapshots* and drop anything older than the retention period.

        ``now`` defaults to the newest stored timestamp.  Returns the number
        of snapshots purged.
        """
        snapshots = list(snapshots)
        with self._lock:
            for snap in snapshots:
                self._snapshots[snap.timestamp] = snap
            if not self._snapshots:
                return 0
            ref = max(self._snapshots) if now is None else now
            cutoff = ref - self.retention_days * DAY_MS
            stale = [ts for ts in self._snapshots if ts <= cutoff]
            for ts in stale:
                del self._snapshots[ts]

            if self.metrics_path is not None:
                if stale:
                    ordered = sorted(self._snapshots.values(), key=lambda s: s.timestamp)
                    self._write_lines(self.metrics_path, (s.to_dict() for s in ordered), "w")
                else:
                    self._write_lines(self.metrics_path, (s.to_dict() for s in snapshots), "a")
        return len(stale)

    def snapshots(self) -> list[TrainingSnapshot]:
        """All stored snapshots, oldest first."""
        with self._lock:
            return sorted(self._snapshots.values(), key=lambda s: s.timestamp)

    def recent(self, n: int) -> list[TrainingSnapshot]:
        return self.snapshots()[-n:] if n > 0 else []

    def add_session(self, session: TrainingSession) -> None:
        with self._lock:
            self.sessions.append(session)
            if self.history_path is not None:
                self._write_lines(self.history_path, [session.to_dict()], "a")


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------


def prepare_training_data(
    snapshots: Iterable[TrainingSnapshot],
) -> tuple[np.ndarray, np.ndarray]:
    """Sliding windows ``(m, 60, 11)`` and targets ``(m,)`` in 0-1.

    For each ``i < n - 90``: input is snapshots ``[i, i+60)`` and the
    target is the score of snapshot ``i+90`` divided by 100.
    """
    ordered = sorted(snapshots, key=lambda s: s.timestamp)
    feats = feature_matrix(ordered)
    scores = np.asarray([s.exhaustion_score for s in ordered], dtype=np.float64)
    m = max(0, len(ordered) - TARGET_OFFSET)
    if m == 0:
        return np.zeros((0, SEQUENCE_LENGTH, feats.shape[1])), np.zeros(0)
    windows = np.stack([feats[i:i + SEQUENCE_LENGTH] for i in range(m)])
    targets = scores[TARGET_OFFSET:TARGET_OFFSET + m] / 100.0
    return windows, targets


def _errors(model: SequenceRegressor, x: np.ndarray, y: np.ndarray) -> tuple[float, float]:
    pred = model.predict(x)
    diff = pred - y
    return float(np.mean(diff ** 2)), float(np.mean(np.abs(diff)))


def generate_synthetic_data(
    n: int = 1000,
    start: float | None = None,
    seed: int | None = None,
    tz: tzinfo | None = None,
) -> list[TrainingSnapshot]:
    """Minute-spaced snapshots with plausible fatigue patterns.

    Score = 100 minus a time-of-day term (30 between 23:00 and 05:59,
    20 at 15:00) minus a session-length term that ramps 0.5/min over a
    4-hour cycle, plus U(-10, 10) noise, clamped to [20, 100].  Sub-scores
    correlate with ``100 - score``.
    """
    rng = np.random.default_rng(seed)
    if start is None:
        start = now_ms() - n * MINUTE_MS

    def noise() -> float:
        return float(rng.uniform(-10.0, 10.0))

    out = []
    for i in range(n):
        ts = start + i * MINUTE_MS
        hour = datetime.fromtimestamp(ts / 1000.0, tz=tz).hour
        if hour < 6 or hour > 22:
            time_of_day = 30.0
        elif 14 < hour < 16:
            time_of_day = 20.0
        else:
            time_of_day = 0.0
        session_term = min(50.0, (i % 240) * 0.5)

        score = max(20.0, min(100.0, 100.0 - time_of_day - session_term + noise()))
        fatigue = 100.0 - score
        out.append(TrainingSnapshot(
            timestamp=ts,
            behavioral=(
                max(0.0, fatigue * 0.6 + noise()),
                max(0.0, fatigue * 0.5 + noise()),
                max(0.0, fatigue * 0.4 + noise()),
                max(0.0, fatigue * 0.3 + noise()),
                max(0.0, fatigue * 0.3 + noise()),
                max(0.0, time_of_day + noise() * 5),
                float(rng.uniform(0.0, 20.0)),
            ),
            physiological=(
                max(0.0, fatigue * 0.7 + noise()),
                max(0.0, fatigue * 0.4 + noise()),
                max(0.0, fatigue * 0.5 + noise()),
                max(0.0, fatigue * 0.6 + noise()),
            ),
            exhaustion_score=score,
        ))
    return out


class ModelTrainer:
    """Collects snapshots, fits the regressor and decides when to refit.

    Args:
        store: Snapshot store (defaults to in-memory).
        regressor_factory: Builds a fresh regressor for each fit.
        clock: Millisecond clock.
    """

    def __init__(
        self,
        store: TrainingSnapshotStore | None = None,
        regressor_factory: Callable[[], SequenceRegressor] = RidgeSequenceRegressor,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.store = store if store is not None else TrainingSnapshotStore()
        self.regressor_factory = regressor_factory
        self.clock = clock
        self.regressor: SequenceRegressor | None = None

    def store_snapshot(self, snapshot: TrainingSnapshot, now: float | None = None) -> None:
        self.store.add(snapshot, now)

    def prepare_training_data(self) -> tuple[np.ndarray, np.ndarray]:
        return prepare_training_data(self.store.snapshots())

    def train_model(self) -> TrainingResult:
        n = len(self.store)
        if n < MIN_TRAINING_SNAPSHOTS:
            logger.info(
                "Not enough data for training: %d snapshots (need %d)",
                n, MIN_TRAINING_SNAPSHOTS,
            )
            return TrainingResult(success=False, data_points=0)

        windows, targets = self.prepare_training_data()
        if len(windows) == 0:
            logger.info("No valid training sequences")
            return TrainingResult(success=False, data_points=0)

        x = normalize(windows)
        split = int(len(x) * TRAIN_FRACTION)
        model = self.regressor_factory()
        model.fit(x[:split], targets[:split])

        loss, mae = _errors(model, x[:split], targets[:split])
        val_loss = val_mae = None
        if split < len(x):
            val_loss, val_mae = _errors(model, x[split:], targets[split:])

        self.regressor = model
        self.store.add_session(TrainingSession(
            timestamp=self.clock(),
            final_loss=loss,
            final_mae=mae,
            data_points=len(x),
        ))
        logger.info(
            "Trained on %d sequences: loss=%.4f mae=%.4f val_loss=%s",
            len(x), loss, mae, "n/a" if val_loss is None else f"{val_loss:.4f}",
        )
        return TrainingResult(
            success=True,
            final_loss=loss,
            final_mae=mae,
            data_points=len(x),
            val_loss=val_loss,
            val_mae=val_mae,
        )

    def pretrain(
        self,
        n: int = PRETRAIN_SAMPLES,
        seed: int | None = None,
        tz: tzinfo | None = None,
    ) -> TrainingResult:
        """Seed the store with synthetic minutes ending now, then train."""
        logger.info("Generating %d synthetic training snapshots", n)
        data = generate_synthetic_data(n, start=self.clock() - n * MINUTE_MS, seed=seed, tz=tz)
        self.store.add_many(data)
        return self.train_model()

    def should_retrain(self, now: float | None = None) -> bool:
        """True if never trained, last fit is over 7 days old, or >500 new points."""
        if not self.store.sessions:
            return True
        now = self.clock() if now is None else now
        last = self.store.sessions[-1]
        if (now - last.timestamp) / DAY_MS > RETRAIN_AFTER_DAYS:
            return True
        new_points = sum(1 for s in self.store.snapshots() if s.timestamp > last.timestamp)
        return new_points > RETRAIN_NEW_POINTS

    def get_status(self, now: float | None = None) -> dict[str, Any]:
        sessions = self.store.sessions
        return {
            "ready": self.regressor is not None and self.regressor.is_fitted,
            "snapshot_count": len(self.store),
            "last_training": sessions[-1].to_dict() if sessions else None,
            "training_sessions": len(sessions),
            "should_retrain": self.should_retrain(now),
        }
