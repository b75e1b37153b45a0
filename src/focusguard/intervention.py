"""Sustained-low-score intervention trigger.

States::

    Nominal --(score < mild)--> BelowThreshold(since)
    BelowThreshold --(sustained >= 30 s and cooldown elapsed)--> fire, Nominal
    any --(score >= mild)--> Nominal

The cooldown is tracked separately through the last fire time.  Recovery
above the mild threshold resets the sustain tracking immediately, even
inside the cooldown window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

MILD_THRESHOLD = 40.0
URGENT_THRESHOLD = 20.0
SUSTAIN_MS = 30 * 1000
COOLDOWN_MS = 5 * 60 * 1000


class InterventionAction(str, Enum):
    """How the user responded to an intervention."""

    DISMISSED = "dismissed"
    STARTED = "started"
    COMPLETED = "completed"
    AUTO_DISMISSED = "auto_dismissed"


@dataclass(frozen=True)
class InterventionNotice:
    """Fire-and-forget message for the UI collaborator."""

    score: float
    is_urgent: bool
    timestamp: float

    def to_dict(self) -> dict:
        return {"score": self.score, "is_urgent": self.is_urgent, "timestamp": self.timestamp}


@dataclass(frozen=True)
class InterventionRecord:
    """A logged intervention response."""

    type: str
    score: float
    action: InterventionAction
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "score": self.score,
            "action": self.action.value,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, d: dict) -> InterventionRecord:
        return cls(
            type=d["type"],
            score=d["score"],
            action=InterventionAction(d["action"]),
            timestamp=d["timestamp"],
        )


class InterventionStateMachine:
    """Hysteresis / cooldown logic over the score stream.

    Args:
        notify: Called with an :class:`InterventionNotice` when an
            intervention fires.  Failures are logged, not raised.
        mild_threshold: Scores below this start the sustain timer.
        urgent_threshold: Scores below this mark the intervention urgent.
        sustain_ms: Continuous time below threshold before firing.
        cooldown_ms: Minimum time between two firings.
    """

    def __init__(
        self,
        notify: Callable[[InterventionNotice], None] | None = None,
        mild_threshold: float = MILD_THRESHOLD,
        urgent_threshold: float = URGENT_THRESHOLD,
        sustain_ms: float = SUSTAIN_MS,
        cooldown_ms: float = COOLDOWN_MS,
    ) -> None:
        self.notify = notify
        self.mild_threshold = mild_threshold
        self.urgent_threshold = urgent_threshold
        self.sustain_ms = sustain_ms
        self.cooldown_ms = cooldown_ms
        self.below_since: float | None = None
        self.last_fire_time: float | None = None

    @property
    def state(self) -> str:
        return "nominal" if self.below_since is None else "below_threshold"

    def in_cooldown(self, now: float) -> bool:
        return (
            self.last_fire_time is not None
            and now - self.last_fire_time <= self.cooldown_ms
        )

    def update(self, score: float, now: float) -> InterventionNotice | None:
        """Feed the latest score.  Returns the notice if one fired."""
        if score >= self.mild_threshold:
            self.below_since = None
            return None

        if self.below_since is None:
            self.below_since = now

        sustained = now - self.below_since
        if sustained < self.sustain_ms or self.in_cooldown(now):
            return None

        notice = InterventionNotice(
            score=score,
            is_urgent=score < self.urgent_threshold,
            timestamp=now,
        )
        self.last_fire_time = now
        self.below_since = None
        logger.info(
            "Intervention fired (score=%.0f, urgent=%s)", score, notice.is_urgent
        )
        self._notify(notice)
        return notice

    def _notify(self, notice: InterventionNotice) -> None:
        if self.notify is None:
            return
        try:
            self.notify(notice)
        except Exception:
            logger.exception("Failed to deliver intervention notice")

    def reset(self) -> None:
        self.below_since = None
        self.last_fire_time = None
