"""Tests for focusguard.scoring -- penalty factors and the score."""

from datetime import datetime, timedelta, timezone

import pytest

from focusguard.events import IdleState
from focusguard.scoring.engine import (
    ADVISORY_CATEGORIES,
    SCORED_CATEGORIES,
    Category,
    ScoreSnapshot,
    clamp_score,
    score_band,
    score_window,
)
from focusguard.scoring.factors import (
    W_CLICK,
    W_IDLE,
    W_IRREGULARITY,
    W_LATE_NIGHT,
    W_MOUSE,
    W_SCROLL,
    W_TAB,
    W_TYPING,
    FactorResult,
    click_accuracy_factor,
    erratic_mouse_factor,
    idle_factor,
    irregularity_factor,
    late_night_factor,
    rapid_scroll_factor,
    tab_switching_factor,
    typing_fatigue_factor,
)
from focusguard.window import EventWindow

from tests.conftest import (
    MINUTE_MS,
    NOON_MS,
    fill_window,
    make_event,
    make_state,
    utc_ms,
)


def _at_hour(hour: int, weekday: bool = True) -> datetime:
    # 2026-10-14 is a Wednesday, 2026-10-17 a Saturday
    day = 14 if weekday else 17
    return datetime(2026, 10, day, hour, 30, tzinfo=timezone.utc)


class TestWeights:
    def test_scored_weights_sum_to_100(self):
        assert W_TAB + W_IDLE + W_LATE_NIGHT + W_MOUSE + W_SCROLL + W_IRREGULARITY == 100

    def test_factor_result_rejects_penalty_above_weight(self):
        with pytest.raises(ValueError):
            FactorResult(penalty=31, raw_metric=None, max_weight=30)

    def test_factor_result_rejects_negative(self):
        with pytest.raises(ValueError):
            FactorResult(penalty=-1, raw_metric=None, max_weight=30)


class TestTabSwitching:
    def test_switches_and_creations_capped(self):
        now = NOON_MS
        events = [make_event("tab_switch", now - 1000 * i) for i in range(12)]
        events += [make_event("tab_created", now - 500 * i) for i in range(4)]
        f = tab_switching_factor(fill_window(events, now), now)
        assert f.penalty == 30  # min(3 * (12 + 4 * 0.5), 30)
        assert f.raw_metric == 12

    def test_partial(self):
        now = NOON_MS
        events = [make_event("tab_switch", now - 1000), make_event("tab_created", now - 2000)]
        f = tab_switching_factor(fill_window(events, now), now)
        assert f.penalty == pytest.approx(4.5)

    def test_outside_two_minutes_ignored(self):
        now = NOON_MS
        events = [make_event("tab_switch", now - 2 * MINUTE_MS - 1)]
        assert tab_switching_factor(fill_window(events, now), now).penalty == 0

    def test_exactly_two_minutes_ago_ignored(self):
        now = NOON_MS
        events = [make_event("tab_switch", now - 2 * MINUTE_MS)]
        assert tab_switching_factor(fill_window(events, now), now).penalty == 0

    def test_future_stamped_switch_ignored(self):
        now = NOON_MS
        window = fill_window([make_event("tab_switch", now + MINUTE_MS)], now + MINUTE_MS)
        assert tab_switching_factor(window, now).penalty == 0


class TestIdle:
    def test_six_minutes_idle(self):
        now = NOON_MS
        f = idle_factor(IdleState.IDLE, now - 6 * MINUTE_MS, now)
        assert f.penalty == pytest.approx(12)

    def test_under_grace_period(self):
        now = NOON_MS
        assert idle_factor(IdleState.IDLE, now - 4 * MINUTE_MS, now).penalty == 0

    def test_capped(self):
        now = NOON_MS
        assert idle_factor(IdleState.IDLE, now - 60 * MINUTE_MS, now).penalty == W_IDLE

    def test_locked_flat(self):
        assert idle_factor(IdleState.LOCKED, None, NOON_MS).penalty == 10

    def test_active(self):
        f = idle_factor(IdleState.ACTIVE, None, NOON_MS)
        assert f.penalty == 0
        assert f.raw_metric == "active"


class TestClockFactors:
    @pytest.mark.parametrize("hour,expected", [
        (23, 15), (0, 15), (4, 15), (22, 8), (5, 8), (6, 0), (12, 0), (21, 0),
    ])
    def test_late_night(self, hour, expected):
        assert late_night_factor(_at_hour(hour)).penalty == expected

    @pytest.mark.parametrize("hour,expected", [
        (6, 10), (22, 10), (7, 5), (21, 5), (8, 0), (20, 0), (12, 0),
    ])
    def test_irregularity_weekday(self, hour, expected):
        assert irregularity_factor(_at_hour(hour)).penalty == expected

    def test_irregularity_weekend_free(self):
        assert irregularity_factor(_at_hour(3, weekday=False)).penalty == 0


class TestPointerAndScroll:
    def _mouse(self, changes, speed, now=NOON_MS):
        e = make_event("mouse_activity", now - 1000, directionChanges=changes, speed=speed)
        return erratic_mouse_factor(fill_window([e], now), now)

    def test_full(self):
        assert self._mouse(25, 600).penalty == W_MOUSE

    def test_partial_by_changes(self):
        assert self._mouse(11, 100).penalty == 8

    def test_partial_by_speed(self):
        assert self._mouse(0, 350).penalty == 8

    def test_minor(self):
        assert self._mouse(6, 100).penalty == 3

    def test_calm(self):
        f = self._mouse(2, 100)
        assert f.penalty == 0
        assert f.raw_metric == 2

    def test_no_mouse_events(self):
        assert erratic_mouse_factor(EventWindow(), NOON_MS).penalty == 0

    def test_average_speed_across_events(self):
        now = NOON_MS
        events = [
            make_event("mouse_activity", now - 1000, directionChanges=11, speed=1000),
            make_event("mouse_activity", now - 2000, directionChanges=11, speed=0),
        ]
        # 22 changes but average speed only 500 -> partial, not full
        assert erratic_mouse_factor(fill_window(events, now), now).penalty == 8

    def test_scroll(self):
        now = NOON_MS
        events = [make_event("scroll_activity", now - 1000, rapidScrolls=3)]
        assert rapid_scroll_factor(fill_window(events, now), now).penalty == 6

    def test_scroll_capped(self):
        now = NOON_MS
        events = [make_event("scroll_activity", now - 1000 * i, rapidScrolls=4) for i in range(3)]
        assert rapid_scroll_factor(fill_window(events, now), now).penalty == W_SCROLL


class TestAdvisory:
    def test_typing_fatigue(self):
        now = NOON_MS
        e = make_event("typing_metrics", now - 1000, variance=5000, errorRate=0.1, fatigued=True)
        f = typing_fatigue_factor(fill_window([e], now), now)
        assert f.penalty == pytest.approx(10.0)  # (0.5 + 0.5) * 10

    def test_typing_not_fatigued(self):
        now = NOON_MS
        e = make_event("typing_metrics", now - 1000, variance=50000, errorRate=1, fatigued=False)
        assert typing_fatigue_factor(fill_window([e], now), now).penalty == 0

    def test_typing_uses_latest_report(self):
        now = NOON_MS
        events = [
            make_event("typing_metrics", now - 5000, variance=20000, errorRate=1, fatigued=True),
            make_event("typing_metrics", now - 1000, fatigued=False),
        ]
        assert typing_fatigue_factor(fill_window(events, now), now).penalty == 0

    def test_typing_capped(self):
        now = NOON_MS
        e = make_event("typing_metrics", now - 1000, variance=99999, errorRate=5, fatigued=True)
        assert typing_fatigue_factor(fill_window([e], now), now).penalty == W_TYPING

    def test_click_accuracy(self):
        now = NOON_MS
        e = make_event("click_accuracy", now - 1000, hesitationRate=0.1, fatigued=True)
        f = click_accuracy_factor(fill_window([e], now), now)
        assert f.penalty == pytest.approx(7.5)

    def test_click_capped(self):
        now = NOON_MS
        e = make_event("click_accuracy", now - 1000, hesitationRate=0.9, fatigued=True)
        assert click_accuracy_factor(fill_window([e], now), now).penalty == W_CLICK


class TestScoreWindow:
    def test_quiet_midday_is_perfect(self):
        snap = score_window(EventWindow(), make_state(), NOON_MS)
        assert snap.score == 100
        assert set(snap.factors) == set(SCORED_CATEGORIES)
        assert set(snap.advisory) == set(ADVISORY_CATEGORIES)

    def test_score_is_100_minus_penalties(self):
        now = NOON_MS
        events = [make_event("tab_switch", now - 1000 * i) for i in range(4)]
        snap = score_window(fill_window(events, now), make_state(), now)
        assert snap.score == pytest.approx(88)
        assert snap.total_penalty == pytest.approx(12)

    def test_advisory_does_not_affect_score(self):
        now = NOON_MS
        e = make_event("click_accuracy", now - 1000, hesitationRate=0.5, fatigued=True)
        snap = score_window(fill_window([e], now), make_state(), now)
        assert snap.score == 100
        assert snap.penalty(Category.CLICK_ACCURACY) > 0

    def test_everything_bad_still_clamped(self):
        now = utc_ms(2026, 10, 14, 2)  # 02:00 on a Wednesday
        events = [make_event("tab_switch", now - 1000 * i) for i in range(20)]
        events += [make_event("mouse_activity", now - 500, directionChanges=30, speed=900)]
        events += [make_event("scroll_activity", now - 500, rapidScrolls=10)]
        state = make_state(idle_state=IdleState.IDLE, idle_since=now - 30 * MINUTE_MS)
        snap = score_window(fill_window(events, now), state, now)
        assert snap.total_penalty == 100
        assert snap.score == 0

    def test_engine_does_not_mutate_window(self):
        now = NOON_MS
        window = fill_window([make_event("tab_switch", now - 1000)], now)
        before = list(window)
        score_window(window, make_state(), now + 60 * MINUTE_MS)
        assert list(window) == before

    def test_timezone_shifts_hour_rules(self):
        now = NOON_MS  # 12:00 UTC
        tz = timezone(timedelta(hours=11))  # 23:00 local
        snap = score_window(EventWindow(), make_state(tz=tz), now)
        assert snap.penalty(Category.LATE_NIGHT) == 15


class TestScoreSnapshot:
    def test_dict_round_trip(self):
        now = NOON_MS
        events = [make_event("tab_switch", now - 1000)]
        snap = score_window(fill_window(events, now), make_state(), now)
        assert ScoreSnapshot.from_dict(snap.to_dict()) == snap

    def test_raw_default(self):
        snap = score_window(EventWindow(), make_state(), NOON_MS)
        assert snap.raw(Category.TYPING_FATIGUE, "none") == "none"


class TestHelpers:
    @pytest.mark.parametrize("value,expected", [(-5, 0), (0, 0), (55, 55), (100, 100), (140, 100)])
    def test_clamp(self, value, expected):
        assert clamp_score(value) == expected

    @pytest.mark.parametrize("score,band", [(70, "green"), (69, "amber"), (50, "amber"),
                                            (49, "orange"), (30, "orange"), (29, "red")])
    def test_score_band(self, score, band):
        assert score_band(score) == band
