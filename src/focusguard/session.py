"""Single-owner focus session.

:class:`FocusSession` owns the event window, the current score and the
intervention/alert state.  Ingestion and scoring ticks are serialised
through one lock so window eviction and score computation always see a
consistent, temporally ordered view.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Callable, Mapping

from focusguard.alerts import Alert, AlertRuleEvaluator
from focusguard.dashboard import DashboardData, build_dashboard, run_daily_cleanup
from focusguard.events import ActivityEvent, EventType, IdleState, parse_event
from focusguard.intervention import (
    InterventionAction,
    InterventionNotice,
    InterventionRecord,
    InterventionStateMachine,
)
from focusguard.scoring.engine import ScoreSnapshot, score_window
from focusguard.store import EventBatcher, HistoryStore, MemoryHistoryStore
from focusguard.summary import DailySummary
from focusguard.window import WINDOW_MS, EventWindow

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000.0


@dataclass
class SessionState:
    """Mutable state of one local session.

    Created at session start; discarded at process exit.
    """

    session_start: float
    tz: tzinfo | None = None
    idle_state: IdleState = IdleState.ACTIVE
    idle_since: float | None = None
    current_score: float = 100.0
    last_snapshot: ScoreSnapshot | None = None
    window: EventWindow = field(default_factory=lambda: EventWindow(WINDOW_MS))

    def apply(self, event: ActivityEvent) -> None:
        """Update idle tracking from an ``idle_change`` event."""
        if event.type is not EventType.IDLE_CHANGE:
            return
        new_state = IdleState(event.get("state"))
        if new_state is IdleState.IDLE:
            if self.idle_state is not IdleState.IDLE or self.idle_since is None:
                self.idle_since = event.timestamp
        else:
            self.idle_since = None
        self.idle_state = new_state


class FocusSession:
    """Runtime for one session: ingest, tick, query.

    Args:
        store: History store collaborator (defaults to in-memory).
        notify: UI callback for intervention notices.
        tz: Timezone for hour-of-day rules (``None`` = system zone).
        start: Session start time in ms (defaults to now).
        clock: Millisecond clock used when callers omit ``now``.
    """

    def __init__(
        self,
        store: HistoryStore | None = None,
        notify: Callable[[InterventionNotice], None] | None = None,
        tz: tzinfo | None = None,
        start: float | None = None,
        clock: Callable[[], float] = now_ms,
        interventions: InterventionStateMachine | None = None,
        alerts: AlertRuleEvaluator | None = None,
    ) -> None:
        self.clock = clock
        start = clock() if start is None else start
        self.store = store if store is not None else MemoryHistoryStore()
        self.state = SessionState(session_start=start, tz=tz)
        self.interventions = interventions or InterventionStateMachine(notify=notify)
        if notify is not None and self.interventions.notify is None:
            self.interventions.notify = notify
        self.alerts = alerts or AlertRuleEvaluator()
        self.batcher = EventBatcher(self.store)
        self._lock = threading.RLock()

        start_event = ActivityEvent(type=EventType.SESSION_START, timestamp=start)
        self.state.window.ingest(start_event, start)

    @property
    def window(self) -> EventWindow:
        return self.state.window

    # -- ingestion ---------------------------------------------------------

    def ingest_event(
        self,
        event_type: Any,
        timestamp: Any = None,
        payload: Mapping[str, Any] | None = None,
        now: float | None = None,
    ) -> ActivityEvent | None:
        """Validate and ingest one sensor event.

        Malformed or unknown events are dropped and ``None`` is returned.
        """
        with self._lock:
            now = self.clock() if now is None else now
            if timestamp is None:
                timestamp = now
            event = parse_event(event_type, timestamp, payload)
            if event is None:
                return None
            self.state.window.ingest(event, now)
            self.state.apply(event)
            self.batcher.add(event)
            return event

    # -- scoring tick ------------------------------------------------------

    def tick(self, now: float | None = None) -> ScoreSnapshot:
        """Compute, persist and react to a new score snapshot."""
        with self._lock:
            now = self.clock() if now is None else now
            self.state.window.evict(now)
            snapshot = score_window(self.state.window, self.state, now)
            self.state.current_score = snapshot.score
            self.state.last_snapshot = snapshot

            try:
                self.store.append_score(snapshot)
            except Exception:
                logger.exception("Failed to store score snapshot")

            self.interventions.update(snapshot.score, now)
            self.alerts.evaluate(snapshot, now)
            return snapshot

    def active_alerts(self) -> list[Alert]:
        with self._lock:
            return self.alerts.active

    def dismiss_alert(self, alert_id: str) -> bool:
        with self._lock:
            return self.alerts.dismiss(alert_id)

    # -- queries -----------------------------------------------------------

    def get_score(self, now: float | None = None) -> dict[str, Any]:
        """Current score, live factor breakdown, session duration, idle state."""
        with self._lock:
            now = self.clock() if now is None else now
            live = score_window(self.state.window, self.state, now)
            return {
                "score": self.state.current_score,
                "factors": {c.value: f.to_dict() for c, f in live.factors.items()},
                "session_duration": now - self.state.session_start,
                "idle_state": self.state.idle_state.value,
            }

    def get_dashboard_data(self, now: float | None = None) -> DashboardData:
        with self._lock:
            now = self.clock() if now is None else now
            live = score_window(self.state.window, self.state, now)
            # The headline number is the last ticked score, not the live one
            live = ScoreSnapshot(
                timestamp=live.timestamp,
                score=self.state.current_score,
                factors=live.factors,
                advisory=live.advisory,
            )
            return build_dashboard(
                snapshot=live,
                window_events=list(self.state.window.query()),
                store=self.store,
                session_start=self.state.session_start,
                idle_state=self.state.idle_state,
                now=now,
                tz=self.state.tz,
            )

    # -- intervention responses -------------------------------------------

    def intervention_response(
        self,
        intervention_type: str = "generic",
        score: float | None = None,
        action: str | InterventionAction = InterventionAction.DISMISSED,
        now: float | None = None,
    ) -> InterventionRecord:
        """Log the user's response to an intervention."""
        with self._lock:
            now = self.clock() if now is None else now
            record = InterventionRecord(
                type=intervention_type or "generic",
                score=self.state.current_score if score is None else score,
                action=InterventionAction(action),
                timestamp=now,
            )
        self.store.append_intervention(record)
        return record

    # -- housekeeping ------------------------------------------------------

    def flush(self) -> int:
        """Write pending events to the store."""
        return self.batcher.flush()

    def daily_cleanup(self, now: float | None = None) -> DailySummary | None:
        now = self.clock() if now is None else now
        try:
            return run_daily_cleanup(
                self.store, now, self.state.session_start, tz=self.state.tz
            )
        except Exception:
            logger.exception("Daily cleanup failed")
            return None
