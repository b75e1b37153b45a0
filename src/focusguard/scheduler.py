"""Periodic driver for a :class:`FocusSession`.

Runs three independent timers on an asyncio loop:

- scoring tick every 30 s
- event batch flush every 15 s
- daily cleanup every 24 h

:class:`EventLogFollower` feeds a live session from a JSONL event log that
another process keeps appending to.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable

from focusguard.events import ActivityEvent
from focusguard.session import FocusSession

logger = logging.getLogger(__name__)

SCORE_INTERVAL_S = 30.0
FLUSH_INTERVAL_S = 15.0
CLEANUP_INTERVAL_S = 24 * 60 * 60.0
POLL_INTERVAL_S = 0.5


async def _every(interval: float, fn: Callable[[], object], name: str) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            result = fn()
            # Async callbacks finish before the next tick is scheduled
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("%s timer failed", name)


async def run_session(
    session: FocusSession,
    duration: float | None = None,
    score_interval: float = SCORE_INTERVAL_S,
    flush_interval: float = FLUSH_INTERVAL_S,
    cleanup_interval: float = CLEANUP_INTERVAL_S,
    on_tick: Callable[[object], Awaitable[None] | None] | None = None,
) -> None:
    """Drive *session* until cancelled (or for *duration* seconds).

    Args:
        session: The session to drive.
        duration: Stop after this many seconds.  None = run until cancelled.
        score_interval: Seconds between scoring ticks.
        flush_interval: Seconds between batch flushes.
        cleanup_interval: Seconds between daily cleanups.
        on_tick: Optional callback receiving each new ScoreSnapshot.
    """

    def _tick() -> Awaitable[None] | None:
        snapshot = session.tick()
        if on_tick is not None:
            return on_tick(snapshot)
        return None

    tasks = [
        asyncio.create_task(_every(score_interval, _tick, "score")),
        asyncio.create_task(_every(flush_interval, session.flush, "flush")),
        asyncio.create_task(_every(cleanup_interval, session.daily_cleanup, "cleanup")),
    ]
    try:
        if duration is not None:
            await asyncio.sleep(duration)
        else:
            await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        # Final flush so nothing buffered is lost on shutdown
        session.flush()


class EventLogFollower:
    """Tail a JSONL event log into *session*.

    Lines use the replay format ``{"type", "timestamp", "payload"}``; a
    missing timestamp means "now".  A line without its trailing newline
    is held back until the writer finishes it.

    Args:
        session: Session receiving the events.
        path: Log file.  It may not exist yet.
        poll_interval: Seconds to wait at end of file.
    """

    def __init__(
        self,
        session: FocusSession,
        path: str | Path,
        poll_interval: float = POLL_INTERVAL_S,
    ) -> None:
        self.session = session
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.events = 0
        self.dropped = 0

    def feed(self, line: str) -> ActivityEvent | None:
        """Ingest one log line.  Returns the event, or None if it was dropped."""
        try:
            row = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("%s: invalid JSON, skipping", self.path.name)
            row = None
        event = None
        if isinstance(row, dict):
            event = self.session.ingest_event(
                row.get("type"), row.get("timestamp"), row.get("payload")
            )
        if event is None:
            self.dropped += 1
        else:
            self.events += 1
        return event

    async def run(self) -> None:
        """Follow the log until cancelled."""
        while not self.path.exists():
            await asyncio.sleep(self.poll_interval)
        logger.info("Following %s", self.path)
        buffer = ""
        with open(self.path) as f:
            while True:
                chunk = f.readline()
                if not chunk:
                    await asyncio.sleep(self.poll_interval)
                    continue
                buffer += chunk
                if not buffer.endswith("\n"):
                    continue
                line, buffer = buffer.strip(), ""
                if line:
                    self.feed(line)
                # Let timers run while a backlog is drained
                await asyncio.sleep(0)
