"""Sequence regressors: map a ``(60, 11)`` feature window to a 0-1 scalar.

:class:`SequenceRegressor` is the interface.  :class:`RidgeSequenceRegressor`
summarises each window into per-feature statistics (mean, last value,
recent mean, slope) and fits an L2-regularised linear model on top.
"""

from __future__ import annotations

import abc
from pathlib import Path

import numpy as np
from scipy import linalg

from focusguard.forecast.features import N_FEATURES

SEQUENCE_LENGTH = 60
RECENT_STEPS = 10
DEFAULT_ALPHA = 1.0


class SequenceRegressor(abc.ABC):
    """Anything that maps ``(batch, 60, 11)`` windows to ``(batch,)`` in [0, 1]."""

    @property
    @abc.abstractmethod
    def is_fitted(self) -> bool: ...

    @abc.abstractmethod
    def fit(self, windows: np.ndarray, targets: np.ndarray) -> None: ...

    @abc.abstractmethod
    def predict(self, windows: np.ndarray) -> np.ndarray: ...

    @abc.abstractmethod
    def save(self, path: str | Path) -> None: ...

    @classmethod
    @abc.abstractmethod
    def load(cls, path: str | Path) -> SequenceRegressor: ...


def _check_windows(windows: np.ndarray) -> np.ndarray:
    arr = np.asarray(windows, dtype=np.float64)
    if arr.ndim == 2:
        arr = arr[np.newaxis, ...]
    if arr.ndim != 3 or arr.shape[1:] != (SEQUENCE_LENGTH, N_FEATURES):
        raise ValueError(
            f"expected windows of shape (n, {SEQUENCE_LENGTH}, {N_FEATURES}), got {arr.shape}"
        )
    return arr


def window_summary(windows: np.ndarray) -> np.ndarray:
    """Per-feature mean, last value, recent mean and slope -> ``(n, 44)``."""
    arr = _check_windows(windows)
    t = np.arange(SEQUENCE_LENGTH, dtype=np.float64)
    t_centered = t - t.mean()
    denom = float(np.sum(t_centered ** 2))

    mean = arr.mean(axis=1)
    last = arr[:, -1, :]
    recent = arr[:, -RECENT_STEPS:, :].mean(axis=1)
    slope = np.einsum("t,ntf->nf", t_centered, arr - mean[:, np.newaxis, :]) / denom
    return np.concatenate([mean, last, recent, slope], axis=1)


class RidgeSequenceRegressor(SequenceRegressor):
    """Closed-form ridge regression over window summaries.

    Args:
        alpha: L2 penalty (the intercept is not penalised).
    """

    def __init__(self, alpha: float = DEFAULT_ALPHA) -> None:
        self.alpha = alpha
        self.coef: np.ndarray | None = None
        self.intercept: float = 0.5

    @property
    def is_fitted(self) -> bool:
        return self.coef is not None

    def fit(self, windows: np.ndarray, targets: np.ndarray) -> None:
        x = window_summary(windows)
        y = np.asarray(targets, dtype=np.float64).reshape(-1)
        if len(x) != len(y):
            raise ValueError("windows and targets must have the same length")
        if len(y) == 0:
            raise ValueError("cannot fit on zero samples")

        x_mean = x.mean(axis=0)
        y_mean = float(y.mean())
        xc = x - x_mean
        yc = y - y_mean
        gram = xc.T @ xc + self.alpha * np.eye(xc.shape[1])
        coef = linalg.solve(gram, xc.T @ yc, assume_a="pos")

        self.coef = coef
        self.intercept = y_mean - float(x_mean @ coef)

    def predict(self, windows: np.ndarray) -> np.ndarray:
        x = window_summary(windows)
        if self.coef is None:
            return np.full(len(x), self.intercept)
        return np.clip(x @ self.coef + self.intercept, 0.0, 1.0)

    def save(self, path: str | Path) -> None:
        if self.coef is None:
            raise ValueError("cannot save an unfitted regressor")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            np.savez(f, coef=self.coef, intercept=np.array([self.intercept]),
                     alpha=np.array([self.alpha]))

    @classmethod
    def load(cls, path: str | Path) -> RidgeSequenceRegressor:
        with np.load(Path(path)) as data:
            model = cls(alpha=float(data["alpha"][0]))
            model.coef = np.asarray(data["coef"], dtype=np.float64)
            model.intercept = float(data["intercept"][0])
        return model
