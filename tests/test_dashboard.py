"""Tests for focusguard.dashboard -- read-side views and daily cleanup."""

from datetime import timezone

import pytest

from focusguard.dashboard import (
    build_dashboard,
    build_hourly_scores,
    distraction_peak,
    format_duration,
    generate_insights,
    idle_ms,
    run_daily_cleanup,
    score_trend,
)
from focusguard.events import IdleState
from focusguard.store import DAY_MS, MemoryHistoryStore, StorageError

from tests.conftest import MINUTE_MS, NOON_MS, make_event, make_snapshot, utc_ms

UTC = timezone.utc


class TestFormatting:
    @pytest.mark.parametrize("ms,text", [
        (0, "0m"), (59_000, "0m"), (45 * MINUTE_MS, "45m"), (125 * MINUTE_MS, "2h 5m"), (-5, "0m"),
    ])
    def test_format_duration(self, ms, text):
        assert format_duration(ms) == text


class TestPieces:
    def test_hourly_scores_grouped_in_first_seen_order(self):
        scores = [
            make_snapshot(score=80, timestamp=utc_ms(2026, 10, 14, 9, 10)),
            make_snapshot(score=61, timestamp=utc_ms(2026, 10, 14, 9, 40)),
            make_snapshot(score=50, timestamp=utc_ms(2026, 10, 14, 10, 5)),
        ]
        assert build_hourly_scores(scores, UTC) == [
            {"hour": "9:00", "avg_score": 70, "count": 2},
            {"hour": "10:00", "avg_score": 50, "count": 1},
        ]

    def test_trend_needs_four_scores(self):
        assert score_trend([make_snapshot(score=s) for s in (10, 90, 90)]) == 0

    def test_trend_second_half_minus_first(self):
        assert score_trend([make_snapshot(score=s) for s in (50, 60, 80, 90)]) == 30

    def test_distraction_peak(self):
        events = [
            make_event("tab_switch", utc_ms(2026, 10, 14, 14, 1)),
            make_event("tab_switch", utc_ms(2026, 10, 14, 14, 2)),
            make_event("tab_switch", utc_ms(2026, 10, 14, 9, 0)),
        ]
        assert distraction_peak(events, UTC) == "14:00"

    def test_distraction_peak_none(self):
        assert distraction_peak([], UTC) == "N/A"

    def test_distraction_peak_midnight_reports_na(self):
        events = [make_event("tab_switch", utc_ms(2026, 10, 14, 0, 5))]
        assert distraction_peak(events, UTC) == "N/A"

    def test_idle_spans(self):
        events = [
            make_event("idle_change", 0, state="idle"),
            make_event("idle_change", 3 * MINUTE_MS, state="active"),
            make_event("idle_change", 5 * MINUTE_MS, state="locked"),
        ]
        assert idle_ms(events, 6 * MINUTE_MS) == 4 * MINUTE_MS


class TestInsights:
    def test_positive_when_nothing_fires(self):
        insights = generate_insights(make_snapshot(), tab_switches_today=0, session_minutes=10)
        assert [i.title for i in insights] == ["Great Focus!"]
        assert insights[0].type == "positive"

    def test_rules(self):
        snap = make_snapshot(tab_switching=18, late_night=8, erratic_mouse=15, anxious_scroll=6)
        titles = [i.title for i in generate_insights(snap, tab_switches_today=101, session_minutes=95)]
        assert titles == [
            "High Context Switching",
            "Late-Night Usage",
            "Erratic Mouse Movement",
            "Doom Scrolling Detected",
            "Time for a Break",
            "Tab Switches Piling Up",
        ]

    def test_break_suppressed_while_idle(self):
        snap = make_snapshot(idle=12)
        titles = [i.title for i in generate_insights(snap, 0, session_minutes=120)]
        assert "Time for a Break" not in titles


class BrokenStore(MemoryHistoryStore):
    def query_since(self, since):
        raise StorageError("unavailable")


class TestBuildDashboard:
    def test_assembles_payload(self):
        store = MemoryHistoryStore()
        store.append_score(make_snapshot(score=90, timestamp=NOON_MS - 30 * MINUTE_MS))
        events = [
            make_event("tab_switch", NOON_MS - 60_000),
            make_event("idle_change", NOON_MS - 4 * MINUTE_MS, state="idle"),
            make_event("idle_change", NOON_MS - 2 * MINUTE_MS, state="active"),
        ]
        data = build_dashboard(
            snapshot=make_snapshot(score=88, tab_switching=3),
            window_events=events,
            store=store,
            session_start=NOON_MS - 65 * MINUTE_MS,
            idle_state=IdleState.ACTIVE,
            now=NOON_MS,
            tz=UTC,
        )
        assert data.current_score == 88
        assert data.session_duration == "1h 5m"
        assert data.idle_time == "2m"
        assert data.active_time == "63m"
        assert data.tab_switches == 1
        assert data.hourly_scores == [{"hour": "11:00", "avg_score": 90, "count": 1}]
        assert data.distraction_peak == "11:00"
        assert data.idle_state == "active"
        assert data.to_dict()["factors"]["tab_switching"]["penalty"] == 3

    def test_storage_fault_degrades(self):
        data = build_dashboard(
            snapshot=make_snapshot(score=71),
            window_events=[],
            store=BrokenStore(),
            session_start=NOON_MS,
            idle_state=IdleState.IDLE,
            now=NOON_MS,
            tz=UTC,
        )
        assert data.current_score == 71
        assert data.hourly_scores == []
        assert data.insights == []


class TestDailyCleanup:
    def test_summary_and_purge(self):
        store = MemoryHistoryStore()
        now = NOON_MS
        for i, s in enumerate((60, 80)):
            store.append_score(make_snapshot(score=s, timestamp=now - i * MINUTE_MS))
        store.append_score(make_snapshot(score=10, timestamp=now - 2 * DAY_MS))
        store.append_event(make_event("tab_switch", now - 31 * DAY_MS))
        store.append_event(make_event("tab_switch", now - DAY_MS))

        summary = run_daily_cleanup(store, now, session_start=now - 60 * MINUTE_MS, tz=UTC)
        assert summary.date == "2026-10-14"
        assert summary.avg_score == 70
        assert summary.total_scores == 2
        assert summary.session_duration_ms == 60 * MINUTE_MS
        assert store.daily_summaries() == [summary]
        assert len(store.events) == 1

    def test_no_scores_no_summary(self):
        store = MemoryHistoryStore()
        assert run_daily_cleanup(store, NOON_MS, NOON_MS, tz=UTC) is None
        assert store.daily_summaries() == []
