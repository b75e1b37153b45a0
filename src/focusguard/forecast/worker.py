"""Forecasting service and its request/response worker.

:class:`ForecastService` wires the trainer, the engine and model
persistence together.  :class:`ForecastWorker` runs it off the caller's
path: requests go into an asyncio queue, are handled one at a time in a
worker thread, and each request gets exactly one response carrying its
id.  Faults become ``error`` responses and the worker keeps running.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

from focusguard.forecast.engine import ForecastEngine, Insight, PredictionResult
from focusguard.forecast.features import TrainingSnapshot
from focusguard.forecast.regressor import (
    SEQUENCE_LENGTH,
    RidgeSequenceRegressor,
)
from focusguard.forecast.trainer import (
    MIN_TRAINING_SNAPSHOTS,
    ModelTrainer,
    TrainingResult,
)

logger = logging.getLogger(__name__)


class ForecastService:
    """Prediction, insight and training operations over one snapshot store.

    Args:
        trainer: Trainer (owns the snapshot store).
        model_path: Where the fitted regressor is saved/loaded (``.npz``).
    """

    def __init__(
        self,
        trainer: ModelTrainer | None = None,
        model_path: str | Path | None = None,
    ) -> None:
        self.trainer = trainer or ModelTrainer()
        self.engine = ForecastEngine()
        self.model_path = Path(model_path) if model_path is not None else None
        self.initialized = False

    def initialize(self) -> dict[str, Any]:
        """Load a previously saved model, if any."""
        if self.model_path is not None and self.model_path.exists():
            model = RidgeSequenceRegressor.load(self.model_path)
            self.trainer.regressor = model
            self.engine.regressor = model
            logger.info("Loaded forecast model from %s", self.model_path)
        self.initialized = True
        return {"model_loaded": self.engine.model_ready}

    def _history(self, history: list[TrainingSnapshot] | None) -> list[TrainingSnapshot]:
        if history is not None:
            return history
        return self.trainer.store.recent(SEQUENCE_LENGTH)

    def predict(self, history: list[TrainingSnapshot] | None = None) -> PredictionResult:
        return self.engine.predict(self._history(history))

    def generate_insight(self, history: list[TrainingSnapshot] | None = None) -> Insight:
        return self.engine.generate_insight(self._history(history))

    def store_snapshot(self, snapshot: TrainingSnapshot, now: float | None = None) -> None:
        self.trainer.store_snapshot(snapshot, now)

    def train_model(self, pretrain_if_needed: bool = False, seed: int | None = None) -> TrainingResult:
        trainer = self.trainer
        if (
            pretrain_if_needed
            and not trainer.store.sessions
            and len(trainer.store) < MIN_TRAINING_SNAPSHOTS
        ):
            result = trainer.pretrain(seed=seed)
        else:
            result = trainer.train_model()

        if result.success:
            self.engine.regressor = trainer.regressor
            if self.model_path is not None:
                trainer.regressor.save(self.model_path)
        return result

    def get_status(self) -> dict[str, Any]:
        status = self.trainer.get_status()
        status["initialized"] = self.initialized
        status["model_path"] = str(self.model_path) if self.model_path else None
        return status


# ---------------------------------------------------------------------------
# Worker protocol
# ---------------------------------------------------------------------------


class RequestKind(str, Enum):
    INITIALIZE = "initialize"
    PREDICT = "predict"
    GENERATE_INSIGHT = "generate_insight"
    STORE_SNAPSHOT = "store_snapshot"
    TRAIN_MODEL = "train_model"
    GET_STATUS = "get_status"


@dataclass(frozen=True)
class WorkerRequest:
    id: int
    kind: RequestKind
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkerResponse:
    id: int
    kind: str  # a RequestKind value, or "error"
    payload: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _history_arg(payload: Mapping[str, Any]) -> list[TrainingSnapshot] | None:
    raw = payload.get("history")
    if raw is None:
        return None
    return [s if isinstance(s, TrainingSnapshot) else TrainingSnapshot.from_dict(s) for s in raw]


def handle_request(service: ForecastService, request: WorkerRequest) -> WorkerResponse:
    """Run one request synchronously.  Never raises."""
    kind = request.kind
    p = request.payload
    try:
        if kind is RequestKind.INITIALIZE:
            result: Any = service.initialize()
        elif kind is RequestKind.PREDICT:
            result = service.predict(_history_arg(p)).to_dict()
        elif kind is RequestKind.GENERATE_INSIGHT:
            result = service.generate_insight(_history_arg(p)).to_dict()
        elif kind is RequestKind.STORE_SNAPSHOT:
            snap = p["snapshot"]
            if not isinstance(snap, TrainingSnapshot):
                snap = TrainingSnapshot.from_dict(snap)
            service.store_snapshot(snap, p.get("now"))
            result = {"stored": True}
        elif kind is RequestKind.TRAIN_MODEL:
            result = service.train_model(
                pretrain_if_needed=bool(p.get("pretrain_if_needed", False)),
                seed=p.get("seed"),
            ).to_dict()
        elif kind is RequestKind.GET_STATUS:
            result = service.get_status()
        else:
            raise ValueError(f"unknown request kind: {kind!r}")
    except Exception as e:
        logger.exception("Forecast request %d (%s) failed", request.id, kind)
        return WorkerResponse(id=request.id, kind="error", error=str(e) or type(e).__name__)
    return WorkerResponse(id=request.id, kind=kind.value, payload=result)


class ForecastWorker:
    """Serial request processor for a :class:`ForecastService`.

    Requests are handled in submission order; each handler runs in a
    thread so training does not block the event loop.  There is no
    cancellation: a superseded request still completes and the caller
    keeps whichever response it wants (last write wins).

    Args:
        service: The service to drive.
        on_response: Optional callback invoked with every response.
    """

    def __init__(
        self,
        service: ForecastService | None = None,
        on_response: Callable[[WorkerResponse], None] | None = None,
    ) -> None:
        self.service = service or ForecastService()
        self.on_response = on_response
        self._ids = itertools.count(1)
        self._queue: asyncio.Queue | None = None
        self._task: asyncio.Task | None = None
        self._current: tuple[WorkerRequest, asyncio.Future] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the worker.

        The in-flight request and everything still queued resolve with an
        ``error`` response so no caller is left waiting.
        """
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        pending = []
        if self._current is not None:
            pending.append(self._current)
            self._current = None
        while self._queue is not None:
            try:
                pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                break
        for request, future in pending:
            if not future.done():
                future.set_result(
                    WorkerResponse(id=request.id, kind="error", error="worker stopped")
                )
        if pending:
            logger.info("Forecast worker stopped with %d pending requests", len(pending))

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            request, future = await self._queue.get()
            self._current = (request, future)
            response = await asyncio.to_thread(handle_request, self.service, request)
            self._current = None
            if self.on_response is not None:
                try:
                    self.on_response(response)
                except Exception:
                    logger.exception("Response callback failed")
            if not future.done():
                future.set_result(response)
            self._queue.task_done()

    def submit(self, kind: RequestKind | str, **payload: Any) -> asyncio.Future:
        """Queue a request.  The returned future resolves to its response."""
        if not self.running:
            self.start()
        request = WorkerRequest(id=next(self._ids), kind=RequestKind(kind), payload=payload)
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((request, future))
        return future

    async def request(self, kind: RequestKind | str, **payload: Any) -> WorkerResponse:
        return await self.submit(kind, **payload)
