"""Typed activity events and payload validation.

Sensors hand us loosely-typed messages ``(type, timestamp, payload)``.
:func:`parse_event` turns them into immutable :class:`ActivityEvent`
instances, or returns ``None`` for anything it does not recognise.
Telemetry is fail-open: a bad event is dropped, never raised.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Every event kind the core understands."""

    TAB_SWITCH = "tab_switch"
    TAB_CREATED = "tab_created"
    TAB_CLOSED = "tab_closed"
    BROWSER_FOCUS = "browser_focus"
    BROWSER_BLUR = "browser_blur"
    IDLE_CHANGE = "idle_change"
    MOUSE_ACTIVITY = "mouse_activity"
    SCROLL_ACTIVITY = "scroll_activity"
    KEYSTROKE_ACTIVITY = "keystroke_activity"
    TYPING_METRICS = "typing_metrics"
    CLICK_ACCURACY = "click_accuracy"
    SESSION_START = "session_start"


class IdleState(str, Enum):
    """Host idle detector states."""

    ACTIVE = "active"
    IDLE = "idle"
    LOCKED = "locked"


# ---------------------------------------------------------------------------
# Payload schemas
# ---------------------------------------------------------------------------

NUM = "num"
STR = "str"
BOOL = "bool"

# field name -> kind.  Every field is optional unless listed in REQUIRED.
PAYLOAD_SCHEMAS: dict[EventType, dict[str, str]] = {
    EventType.TAB_SWITCH: {
        "from_tab": NUM, "to_tab": NUM, "duration": NUM, "from_url": STR,
    },
    EventType.TAB_CREATED: {"tab_id": NUM, "url": STR},
    EventType.TAB_CLOSED: {"tab_id": NUM},
    EventType.BROWSER_FOCUS: {},
    EventType.BROWSER_BLUR: {"duration": NUM},
    EventType.IDLE_CHANGE: {"state": STR, "previous_state": STR},
    EventType.MOUSE_ACTIVITY: {
        "count": NUM, "speed": NUM, "direction_changes": NUM, "tab_id": NUM,
    },
    EventType.SCROLL_ACTIVITY: {"count": NUM, "rapid_scrolls": NUM, "tab_id": NUM},
    EventType.KEYSTROKE_ACTIVITY: {"count": NUM, "tab_id": NUM},
    EventType.TYPING_METRICS: {
        "avg_interval": NUM,
        "variance": NUM,
        "std_dev": NUM,
        "error_rate": NUM,
        "total_keystrokes": NUM,
        "backspaces": NUM,
        "fatigued": BOOL,
        "tab_id": NUM,
    },
    EventType.CLICK_ACCURACY: {
        "total_clicks": NUM,
        "hesitation_clicks": NUM,
        "hesitation_rate": NUM,
        "fatigued": BOOL,
        "tab_id": NUM,
    },
    EventType.SESSION_START: {},
}

REQUIRED: dict[EventType, tuple[str, ...]] = {
    EventType.IDLE_CHANGE: ("state",),
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """``directionChanges`` -> ``direction_changes``."""
    return _CAMEL_RE.sub("_", name).lower()


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _coerce(kind: str, value: Any) -> tuple[bool, Any]:
    """Return ``(ok, value)`` for a single payload field."""
    if value is None:
        return True, None
    if kind == NUM:
        if _is_number(value):
            return True, value
        # Some content scripts send rates as strings ("0.15")
        if isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                return False, None
            return math.isfinite(number), number
        return False, None
    if kind == BOOL:
        return isinstance(value, bool), value
    return isinstance(value, str), value


# ---------------------------------------------------------------------------
# ActivityEvent
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActivityEvent:
    """One immutable telemetry observation."""

    type: EventType
    timestamp: float  # ms since epoch
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the payload so the event stays immutable once created
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def get(self, key: str, default: Any = 0) -> Any:
        """Payload lookup with a default for missing / null fields."""
        value = self.payload.get(key)
        return default if value is None else value

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> ActivityEvent | None:
        return parse_event(d.get("type"), d.get("timestamp"), d.get("payload"))

    def __repr__(self) -> str:
        return f"ActivityEvent({self.type.value}, t={self.timestamp:.0f}, {dict(self.payload)})"


def parse_event(
    event_type: Any,
    timestamp: Any,
    payload: Mapping[str, Any] | None = None,
) -> ActivityEvent | None:
    """Validate a raw sensor message.

    Args:
        event_type: An :class:`EventType` or its string value.
        timestamp: Milliseconds since the epoch.
        payload: Type-specific fields; camelCase keys are accepted.

    Returns:
        An :class:`ActivityEvent`, or ``None`` if the message is malformed
        or of an unknown type.
    """
    try:
        etype = EventType(event_type)
    except ValueError:
        logger.debug("Dropping event of unknown type %r", event_type)
        return None

    if not _is_number(timestamp) or timestamp < 0:
        logger.debug("Dropping %s event with bad timestamp %r", etype.value, timestamp)
        return None

    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        logger.debug("Dropping %s event with non-mapping payload", etype.value)
        return None

    schema = PAYLOAD_SCHEMAS[etype]
    clean: dict[str, Any] = {}
    for raw_key, value in payload.items():
        if not isinstance(raw_key, str):
            continue
        key = snake_case(raw_key)
        kind = schema.get(key)
        if kind is None:
            continue  # unknown extras are ignored
        ok, coerced = _coerce(kind, value)
        if not ok:
            logger.debug("Dropping %s event: field %s=%r", etype.value, key, value)
            return None
        clean[key] = coerced

    for key in REQUIRED.get(etype, ()):
        if clean.get(key) is None:
            logger.debug("Dropping %s event: missing %s", etype.value, key)
            return None

    if etype is EventType.IDLE_CHANGE:
        try:
            IdleState(clean["state"])
        except ValueError:
            logger.debug("Dropping idle_change with unknown state %r", clean["state"])
            return None

    return ActivityEvent(type=etype, timestamp=float(timestamp), payload=clean)
