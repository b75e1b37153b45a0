"""Tests for focusguard.events -- payload validation and normalisation."""

import math

import pytest

from focusguard.events import (
    ActivityEvent,
    EventType,
    IdleState,
    parse_event,
    snake_case,
)


class TestSnakeCase:
    def test_camel(self):
        assert snake_case("directionChanges") == "direction_changes"

    def test_already_snake(self):
        assert snake_case("rapid_scrolls") == "rapid_scrolls"

    def test_single_word(self):
        assert snake_case("count") == "count"


class TestParseEvent:
    def test_valid_tab_switch(self):
        e = parse_event("tab_switch", 1000, {"fromTab": 1, "toTab": 2, "duration": 500})
        assert e is not None
        assert e.type is EventType.TAB_SWITCH
        assert e.timestamp == 1000.0
        assert e.get("from_tab") == 1
        assert e.get("to_tab") == 2

    def test_enum_type_accepted(self):
        assert parse_event(EventType.BROWSER_FOCUS, 5) is not None

    def test_unknown_type_dropped(self):
        assert parse_event("keyboard_smash", 1000, {}) is None

    def test_negative_timestamp_dropped(self):
        assert parse_event("tab_switch", -1, {}) is None

    def test_bool_timestamp_dropped(self):
        assert parse_event("tab_switch", True, {}) is None

    def test_string_timestamp_dropped(self):
        assert parse_event("tab_switch", "yesterday", {}) is None

    @pytest.mark.parametrize("ts", [math.inf, -math.inf, math.nan])
    def test_non_finite_timestamp_dropped(self, ts):
        assert parse_event("tab_switch", ts, {}) is None

    @pytest.mark.parametrize("value", [math.inf, math.nan, "inf", "NaN"])
    def test_non_finite_field_dropped(self, value):
        assert parse_event("mouse_activity", 1000, {"speed": value}) is None

    def test_non_mapping_payload_dropped(self):
        assert parse_event("mouse_activity", 1000, [1, 2, 3]) is None

    def test_wrong_field_type_dropped(self):
        assert parse_event("mouse_activity", 1000, {"speed": "fast"}) is None

    def test_numeric_string_coerced(self):
        e = parse_event("click_accuracy", 1000, {"hesitationRate": "0.25"})
        assert e is not None
        assert e.get("hesitation_rate") == pytest.approx(0.25)

    def test_bool_for_number_dropped(self):
        assert parse_event("scroll_activity", 1000, {"rapidScrolls": True}) is None

    def test_unknown_fields_ignored(self):
        e = parse_event("scroll_activity", 1000, {"rapidScrolls": 2, "colour": "red"})
        assert e is not None
        assert "colour" not in e.payload

    def test_missing_payload_is_empty(self):
        e = parse_event("browser_focus", 1000, None)
        assert e is not None
        assert dict(e.payload) == {}

    def test_idle_change_requires_state(self):
        assert parse_event("idle_change", 1000, {}) is None

    def test_idle_change_unknown_state_dropped(self):
        assert parse_event("idle_change", 1000, {"state": "asleep"}) is None

    @pytest.mark.parametrize("state", ["active", "idle", "locked"])
    def test_idle_change_states(self, state):
        e = parse_event("idle_change", 1000, {"state": state})
        assert e is not None
        assert IdleState(e.get("state")) is IdleState(state)

    def test_fatigued_must_be_bool(self):
        assert parse_event("typing_metrics", 1000, {"fatigued": "yes"}) is None
        assert parse_event("typing_metrics", 1000, {"fatigued": True}) is not None


class TestActivityEvent:
    def test_get_default_for_missing(self):
        e = parse_event("mouse_activity", 1000, {})
        assert e.get("speed") == 0
        assert e.get("speed", None) is None

    def test_payload_is_read_only(self):
        e = parse_event("mouse_activity", 1000, {"speed": 10})
        with pytest.raises(TypeError):
            e.payload["speed"] = 20

    def test_payload_detached_from_input(self):
        raw = {"speed": 10}
        e = ActivityEvent(EventType.MOUSE_ACTIVITY, 1000, raw)
        raw["speed"] = 99
        assert e.get("speed") == 10

    def test_dict_round_trip(self):
        e = parse_event("tab_created", 1234, {"tabId": 7, "url": "https://example.com"})
        again = ActivityEvent.from_dict(e.to_dict())
        assert again == e

    def test_from_dict_malformed(self):
        assert ActivityEvent.from_dict({"type": "tab_switch"}) is None
