"""Behaviour alert rules.

Every rule looks at the latest :class:`ScoreSnapshot` and yields at most
one candidate alert.  Each trigger key has its own cooldown; a candidate
is also suppressed while an alert with the same key is still queued.
Fired alerts are prepended to an active queue capped at three entries.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable

from focusguard.scoring.engine import Category, ScoreSnapshot

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
MAX_ACTIVE = 3
DEFAULT_COOLDOWN_MS = 5 * MINUTE_MS

DANGER_SCORE = 35
WARNING_SCORE = 55


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


class WellnessType(str, Enum):
    BREATHING = "breathing"
    STRETCH = "stretch"
    EYE_REST = "eye_rest"
    BREAK = "break"


COOLDOWNS_MS: dict[str, int] = {
    "score_danger": 5 * MINUTE_MS,
    "score_warning": 10 * MINUTE_MS,
    "tab_switching": 5 * MINUTE_MS,
    "erratic_mouse": 8 * MINUTE_MS,
    "anxious_scroll": 8 * MINUTE_MS,
    "typing_fatigue": 10 * MINUTE_MS,
    "click_accuracy": 10 * MINUTE_MS,
    "late_night": 30 * MINUTE_MS,
}


@dataclass(frozen=True)
class AlertDefinition:
    """Static content of an alert, keyed by ``trigger_key``."""

    severity: Severity
    trigger_key: str
    title: str
    message: str
    suggestion: str
    cta_label: str
    wellness_type: WellnessType


@dataclass(frozen=True)
class Alert:
    """A fired alert instance waiting in the active queue."""

    id: str
    definition: AlertDefinition
    created_at: float

    @property
    def trigger_key(self) -> str:
        return self.definition.trigger_key

    def to_dict(self) -> dict:
        d = asdict(self.definition)
        d["severity"] = self.definition.severity.value
        d["wellness_type"] = self.definition.wellness_type.value
        d["id"] = self.id
        d["created_at"] = self.created_at
        return d


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _fmt(value: float) -> str:
    return f"{value:.0f}"


def _score_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    if snap.score < DANGER_SCORE:
        return AlertDefinition(
            severity=Severity.DANGER,
            trigger_key="score_danger",
            title="Focus Score Critical",
            message=(
                f"Your focus score has dropped to {_fmt(snap.score)}. "
                "Your cognitive state needs attention right now."
            ),
            suggestion="A 4-minute breathing exercise can help restore clarity.",
            cta_label="Start Breathing",
            wellness_type=WellnessType.BREATHING,
        )
    if snap.score < WARNING_SCORE:
        return AlertDefinition(
            severity=Severity.WARNING,
            trigger_key="score_warning",
            title="Focus Dropping",
            message=(
                f"Focus score is {_fmt(snap.score)}, below the healthy range. "
                "Signs of cognitive load are building up."
            ),
            suggestion="Take a 2-minute break or stretch to reset.",
            cta_label="Take a Break",
            wellness_type=WellnessType.STRETCH,
        )
    return None


def _tab_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    switches = snap.raw(Category.TAB_SWITCHING, 0)
    if snap.penalty(Category.TAB_SWITCHING) >= 15 or switches >= 8:
        return AlertDefinition(
            severity=Severity.WARNING,
            trigger_key="tab_switching",
            title="Too Much Tab Switching",
            message=(
                f"You've switched tabs {switches} times in the last 2 minutes. "
                "This fragments your attention."
            ),
            suggestion="Close unused tabs and focus on one task at a time.",
            cta_label="Breathing Reset",
            wellness_type=WellnessType.BREATHING,
        )
    return None


def _mouse_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    if snap.penalty(Category.ERRATIC_MOUSE) >= 7:
        return AlertDefinition(
            severity=Severity.INFO,
            trigger_key="erratic_mouse",
            title="Erratic Mouse Detected",
            message="Rapid, unfocused mouse movement suggests cognitive overload or anxiety.",
            suggestion="Rest your hands, close your eyes for 20 seconds.",
            cta_label="Eye Rest",
            wellness_type=WellnessType.EYE_REST,
        )
    return None


def _scroll_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    if snap.penalty(Category.ANXIOUS_SCROLL) >= 4:
        return AlertDefinition(
            severity=Severity.INFO,
            trigger_key="anxious_scroll",
            title="Doom Scrolling Detected",
            message="You're scrolling rapidly without pausing, a classic anxiety-browsing pattern.",
            suggestion="Step away from the feed. Try a short breathing exercise.",
            cta_label="Calm Down",
            wellness_type=WellnessType.BREATHING,
        )
    return None


def _typing_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    if snap.penalty(Category.TYPING_FATIGUE) >= 12:
        return AlertDefinition(
            severity=Severity.WARNING,
            trigger_key="typing_fatigue",
            title="Typing Fatigue",
            message="High error rate and irregular keystroke rhythm detected.",
            suggestion="Take a wrist and finger stretch break.",
            cta_label="Stretch Now",
            wellness_type=WellnessType.STRETCH,
        )
    return None


def _click_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    if snap.penalty(Category.CLICK_ACCURACY) >= 10:
        return AlertDefinition(
            severity=Severity.INFO,
            trigger_key="click_accuracy",
            title="Click Hesitation Rising",
            message="You're hesitating before clicking more than usual, a sign of decision fatigue.",
            suggestion="A short break helps reset decision-making circuits.",
            cta_label="Take a Break",
            wellness_type=WellnessType.BREAK,
        )
    return None


def _late_night_rule(snap: ScoreSnapshot) -> AlertDefinition | None:
    if snap.penalty(Category.LATE_NIGHT) >= 8:
        hour = snap.raw(Category.LATE_NIGHT, 0)
        time_str = "midnight" if hour == 0 else f"{hour}:00"
        return AlertDefinition(
            severity=Severity.WARNING,
            trigger_key="late_night",
            title="Late-Night Usage",
            message=(
                f"It's {time_str}. Working this late disrupts "
                "tomorrow's cognitive performance."
            ),
            suggestion="Consider a digital sunset. Wrap up and rest.",
            cta_label="Wind Down",
            wellness_type=WellnessType.BREATHING,
        )
    return None


# Evaluated in this order; newly fired alerts keep this order at the
# head of the queue.
RULES: tuple[Callable[[ScoreSnapshot], AlertDefinition | None], ...] = (
    _score_rule,
    _tab_rule,
    _mouse_rule,
    _scroll_rule,
    _typing_rule,
    _click_rule,
    _late_night_rule,
)


def evaluate_rules(snap: ScoreSnapshot) -> list[AlertDefinition]:
    """All candidate alerts for *snap*, ignoring cooldowns."""
    candidates = []
    for rule in RULES:
        definition = rule(snap)
        if definition is not None:
            candidates.append(definition)
    return candidates


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class AlertRuleEvaluator:
    """Cooldown-gated alert queue.

    Args:
        cooldowns_ms: Per trigger-key cooldown overrides.
        max_active: Queue capacity.
    """

    def __init__(
        self,
        cooldowns_ms: dict[str, int] | None = None,
        max_active: int = MAX_ACTIVE,
    ) -> None:
        self.cooldowns_ms = dict(COOLDOWNS_MS)
        if cooldowns_ms:
            self.cooldowns_ms.update(cooldowns_ms)
        self.max_active = max_active
        self.last_fired: dict[str, float] = {}
        self._active: list[Alert] = []

    @property
    def active(self) -> list[Alert]:
        """Queued alerts, newest first."""
        return list(self._active)

    def _eligible(self, key: str, now: float) -> bool:
        last = self.last_fired.get(key)
        cooldown = self.cooldowns_ms.get(key, DEFAULT_COOLDOWN_MS)
        if last is not None and now - last < cooldown:
            return False
        return not any(a.trigger_key == key for a in self._active)

    def evaluate(self, snap: ScoreSnapshot, now: float | None = None) -> list[Alert]:
        """Run every rule against *snap* and queue newly fired alerts.

        Returns the alerts that fired on this evaluation.
        """
        if now is None:
            now = snap.timestamp

        fired: list[Alert] = []
        for definition in evaluate_rules(snap):
            key = definition.trigger_key
            if not self._eligible(key, now):
                continue
            self.last_fired[key] = now
            fired.append(Alert(id=f"alert_{uuid.uuid4().hex[:12]}", definition=definition, created_at=now))

        if fired:
            logger.debug("Fired alerts: %s", ", ".join(a.trigger_key for a in fired))
            self._active = (fired + self._active)[: self.max_active]
        return fired

    def dismiss(self, alert_id: str) -> bool:
        """Remove one queued alert.  Returns False if it was not queued."""
        before = len(self._active)
        self._active = [a for a in self._active if a.id != alert_id]
        return len(self._active) != before

    def dismiss_all(self) -> None:
        self._active = []
