"""Replay recorded event logs through a session for offline analysis.

An event log is JSONL, one event per line::

    {"type": "tab_switch", "timestamp": 1760000000000, "payload": {"from_tab": 1}}

Events are fed to a :class:`FocusSession` on a simulated clock that ticks
every 30 s of log time, so replaying an hour-long log takes a second.
"""

from __future__ import annotations

import json
import logging
import math
import sys
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Any

from focusguard.alerts import Alert
from focusguard.forecast.features import TrainingSnapshot
from focusguard.intervention import InterventionNotice
from focusguard.scoring.engine import ScoreSnapshot
from focusguard.session import FocusSession
from focusguard.store import HistoryStore

logger = logging.getLogger(__name__)

TICK_MS = 30 * 1000
MINUTE_MS = 60 * 1000


@dataclass
class ReplayResult:
    """Everything a replay produced."""

    events: int = 0
    dropped: int = 0
    snapshots: list[ScoreSnapshot] = field(default_factory=list)
    notices: list[InterventionNotice] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
    training: list[TrainingSnapshot] = field(default_factory=list)

    @property
    def min_score(self) -> float | None:
        return min((s.score for s in self.snapshots), default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": self.events,
            "dropped": self.dropped,
            "snapshots": [s.to_dict() for s in self.snapshots],
            "notices": [n.to_dict() for n in self.notices],
            "alerts": [a.to_dict() for a in self.alerts],
        }


def read_event_log(path: str | Path) -> list[dict[str, Any]]:
    """Load raw event dicts from a JSONL log, skipping unparsable lines."""
    rows = []
    with open(path) as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("line %d: invalid JSON, skipping", line_num)
    return rows


def _valid_ts(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def replay_events(
    rows: list[dict[str, Any]],
    store: HistoryStore | None = None,
    tz: tzinfo | None = None,
    tick_ms: float = TICK_MS,
) -> ReplayResult:
    """Drive a fresh session through *rows* in timestamp order.

    The session starts at the first valid timestamp.  A scoring tick runs
    every *tick_ms* of log time, up to one tick past the last event.
    Rows without a usable timestamp are counted as dropped.
    """
    result = ReplayResult()
    timed = [r for r in rows if _valid_ts(r.get("timestamp"))]
    result.dropped = len(rows) - len(timed)
    if not timed:
        return result

    timed.sort(key=lambda r: r["timestamp"])
    start = float(timed[0]["timestamp"])
    end = float(timed[-1]["timestamp"])

    session = FocusSession(store=store, notify=result.notices.append, tz=tz, start=start)
    seen_alerts: set[str] = set()
    next_tick = start + tick_ms
    last_training: float | None = None

    def run_ticks(until: float) -> None:
        nonlocal next_tick, last_training
        while next_tick <= until:
            snap = session.tick(now=next_tick)
            result.snapshots.append(snap)
            for alert in reversed(session.active_alerts()):
                if alert.id not in seen_alerts:
                    seen_alerts.add(alert.id)
                    result.alerts.append(alert)
            if last_training is None or snap.timestamp - last_training >= MINUTE_MS:
                result.training.append(TrainingSnapshot.from_score(snap))
                last_training = snap.timestamp
            next_tick += tick_ms

    for row in timed:
        ts = float(row["timestamp"])
        run_ticks(ts)
        event = session.ingest_event(row.get("type"), ts, row.get("payload"), now=ts)
        if event is None:
            result.dropped += 1
        else:
            result.events += 1

    run_ticks(end + tick_ms)
    session.flush()
    return result


def replay_file(
    log_path: str,
    output_path: str | None = None,
    tz: tzinfo | None = None,
    verbose: bool = False,
) -> ReplayResult:
    """Replay a .jsonl event log and print what happened.

    Args:
        log_path: Path to the event log.
        output_path: Optional path to write the full result as JSON.
        tz: Timezone for hour-of-day rules.
        verbose: Print every score snapshot, not just the summary.
    """
    path = Path(log_path)
    if not path.exists():
        print(f"File not found: {log_path}")
        return ReplayResult()

    print(f"Replaying {path.name}...\n")
    result = replay_events(read_event_log(path), tz=tz)

    if verbose:
        for snap in result.snapshots:
            print(f"  {snap!r}")
    for notice in result.notices:
        kind = "URGENT" if notice.is_urgent else "mild"
        print(f"  [{notice.timestamp:.0f}] intervention ({kind}) at score {notice.score:.0f}")
    for alert in result.alerts:
        print(f"  [{alert.created_at:.0f}] alert {alert.trigger_key}: {alert.definition.title}")

    low = result.min_score
    print(f"\nSummary: {result.events} events, {result.dropped} dropped, "
          f"{len(result.snapshots)} ticks, lowest score "
          f"{'n/a' if low is None else f'{low:.0f}'}")

    if output_path:
        with open(output_path, "w") as out:
            json.dump(result.to_dict(), out, indent=2)
        print(f"Output written to {output_path}")

    return result


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python -m focusguard.replay <events.jsonl> [output.json]")
        sys.exit(1)

    log_path = sys.argv[1]
    output_path = sys.argv[2] if len(sys.argv) > 2 and not sys.argv[2].startswith("-") else None
    verbose = "--verbose" in sys.argv or "-v" in sys.argv

    replay_file(log_path, output_path, verbose=verbose)


if __name__ == "__main__":
    main()
