"""Tests for focusguard.alerts -- rule table, cooldowns and the active queue."""

import pytest

from focusguard.alerts import (
    COOLDOWNS_MS,
    MAX_ACTIVE,
    AlertRuleEvaluator,
    Severity,
    WellnessType,
    evaluate_rules,
)
from focusguard.scoring.engine import Category

from tests.conftest import MINUTE_MS, NOON_MS, make_snapshot


def _keys(definitions):
    return [d.trigger_key for d in definitions]


class TestRules:
    def test_healthy_snapshot_has_no_candidates(self):
        assert evaluate_rules(make_snapshot()) == []

    def test_score_danger(self):
        defs = evaluate_rules(make_snapshot(score=34))
        assert _keys(defs) == ["score_danger"]
        assert defs[0].severity is Severity.DANGER
        assert defs[0].wellness_type is WellnessType.BREATHING

    def test_score_warning_is_exclusive(self):
        assert _keys(evaluate_rules(make_snapshot(score=35))) == ["score_warning"]
        assert _keys(evaluate_rules(make_snapshot(score=54.9))) == ["score_warning"]
        assert evaluate_rules(make_snapshot(score=55)) == []

    def test_tab_switching_by_penalty(self):
        assert "tab_switching" in _keys(evaluate_rules(make_snapshot(score=90, tab_switching=15)))

    def test_tab_switching_by_count(self):
        snap = make_snapshot(score=90, tab_switching=3, raw={Category.TAB_SWITCHING: 8})
        defs = evaluate_rules(snap)
        assert "tab_switching" in _keys(defs)
        assert "8 times" in defs[0].message

    def test_erratic_mouse(self):
        assert _keys(evaluate_rules(make_snapshot(score=90, erratic_mouse=7))) == ["erratic_mouse"]
        assert evaluate_rules(make_snapshot(score=90, erratic_mouse=6)) == []

    def test_anxious_scroll(self):
        assert _keys(evaluate_rules(make_snapshot(score=90, anxious_scroll=4))) == ["anxious_scroll"]

    def test_typing_fatigue_advisory(self):
        assert _keys(evaluate_rules(make_snapshot(score=90, typing_fatigue=12))) == ["typing_fatigue"]

    def test_click_accuracy_advisory(self):
        assert _keys(evaluate_rules(make_snapshot(score=90, click_accuracy=10))) == ["click_accuracy"]

    def test_late_night_message(self):
        snap = make_snapshot(score=90, late_night=15, raw={Category.LATE_NIGHT: 0})
        defs = evaluate_rules(snap)
        assert _keys(defs) == ["late_night"]
        assert "midnight" in defs[0].message

    def test_rule_order(self):
        snap = make_snapshot(score=20, tab_switching=30, erratic_mouse=15, late_night=15)
        assert _keys(evaluate_rules(snap)) == [
            "score_danger", "tab_switching", "erratic_mouse", "late_night",
        ]

    def test_every_key_has_a_cooldown(self):
        assert set(COOLDOWNS_MS) == {
            "score_danger", "score_warning", "tab_switching", "erratic_mouse",
            "anxious_scroll", "typing_fatigue", "click_accuracy", "late_night",
        }


class TestAlertRuleEvaluator:
    def test_fires_and_queues(self):
        ev = AlertRuleEvaluator()
        fired = ev.evaluate(make_snapshot(score=90, tab_switching=15), NOON_MS)
        assert len(fired) == 1
        assert fired[0].id.startswith("alert_")
        assert ev.active == fired

    def test_tab_switching_twice_within_cooldown(self):
        ev = AlertRuleEvaluator()
        snap = make_snapshot(score=90, tab_switching=15)
        first = ev.evaluate(snap, NOON_MS)
        ev.dismiss_all()
        second = ev.evaluate(snap, NOON_MS + 3 * MINUTE_MS)
        assert len(first) == 1
        assert second == []

    def test_fires_again_after_cooldown(self):
        ev = AlertRuleEvaluator()
        snap = make_snapshot(score=90, tab_switching=15)
        ev.evaluate(snap, NOON_MS)
        ev.dismiss_all()
        assert len(ev.evaluate(snap, NOON_MS + 5 * MINUTE_MS)) == 1

    def test_active_key_suppresses_even_after_cooldown(self):
        ev = AlertRuleEvaluator()
        snap = make_snapshot(score=90, tab_switching=15)
        ev.evaluate(snap, NOON_MS)
        assert ev.evaluate(snap, NOON_MS + 60 * MINUTE_MS) == []

    def test_keys_have_independent_cooldowns(self):
        ev = AlertRuleEvaluator()
        ev.evaluate(make_snapshot(score=90, tab_switching=15), NOON_MS)
        fired = ev.evaluate(make_snapshot(score=90, erratic_mouse=8), NOON_MS + 1000)
        assert [a.trigger_key for a in fired] == ["erratic_mouse"]

    def test_queue_capped_newest_first(self):
        ev = AlertRuleEvaluator()
        ev.evaluate(make_snapshot(score=90, anxious_scroll=5), NOON_MS)
        snap = make_snapshot(score=20, tab_switching=30, erratic_mouse=15, late_night=15)
        ev.evaluate(snap, NOON_MS + 1000)
        active = [a.trigger_key for a in ev.active]
        assert len(active) == MAX_ACTIVE
        assert active == ["score_danger", "tab_switching", "erratic_mouse"]

    def test_overflow_alerts_still_start_cooldown(self):
        ev = AlertRuleEvaluator()
        snap = make_snapshot(score=20, tab_switching=30, erratic_mouse=15, late_night=15)
        ev.evaluate(snap, NOON_MS)
        assert "late_night" in ev.last_fired
        ev.dismiss_all()
        fired = ev.evaluate(snap, NOON_MS + 6 * MINUTE_MS)
        assert "late_night" not in [a.trigger_key for a in fired]

    def test_dismiss(self):
        ev = AlertRuleEvaluator()
        alert = ev.evaluate(make_snapshot(score=90, tab_switching=15), NOON_MS)[0]
        assert ev.dismiss(alert.id) is True
        assert ev.dismiss(alert.id) is False
        assert ev.active == []

    def test_cooldown_override(self):
        ev = AlertRuleEvaluator(cooldowns_ms={"tab_switching": 0})
        snap = make_snapshot(score=90, tab_switching=15)
        ev.evaluate(snap, NOON_MS)
        ev.dismiss_all()
        assert len(ev.evaluate(snap, NOON_MS)) == 1

    def test_defaults_now_to_snapshot_time(self):
        ev = AlertRuleEvaluator()
        ev.evaluate(make_snapshot(score=90, tab_switching=15, timestamp=1234))
        assert ev.last_fired["tab_switching"] == 1234

    def test_to_dict(self):
        ev = AlertRuleEvaluator()
        alert = ev.evaluate(make_snapshot(score=30), NOON_MS)[0]
        d = alert.to_dict()
        assert d["severity"] == "danger"
        assert d["trigger_key"] == "score_danger"
        assert d["id"] == alert.id
        assert d["created_at"] == NOON_MS


@pytest.mark.parametrize("key,minutes", [
    ("score_danger", 5), ("score_warning", 10), ("late_night", 30), ("erratic_mouse", 8),
])
def test_cooldown_table(key, minutes):
    assert COOLDOWNS_MS[key] == minutes * MINUTE_MS
