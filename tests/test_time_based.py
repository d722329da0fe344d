"""Tests for time-based actions."""

from datetime import datetime, timedelta, timezone

import pytest

from freight_decisions.actions import ActionRecommendationService, get_time_based_actions
from freight_decisions.config import ActionConfig
from freight_decisions.schemas import ShipmentContext, TimeBasedRule, TriggerEvent

NOW = datetime(2026, 1, 10, 9, 0, tzinfo=timezone.utc)

SI_RULE = TimeBasedRule(
    name="si_cutoff_reminder",
    trigger_event=TriggerEvent.SI_CUTOFF,
    trigger_offset_hours=-24,
    action_verb="Submit",
    description="Submit SI before cutoff",
    owner="documentation",
    applicable_stages=("BOOKED",),
    unless_condition="si_submitted",
    notify_parties=("customer",),
    urgency="high",
)

VGM_RULE = TimeBasedRule(
    name="vgm_cutoff_reminder",
    trigger_event=TriggerEvent.VGM_CUTOFF,
    trigger_offset_hours=-12,
    action_verb="Submit",
    description="Submit VGM before cutoff",
)


def booked(**overrides) -> ShipmentContext:
    values = {"stage": "BOOKED", "conditions": {"si_submitted": False}}
    values.update(overrides)
    return ShipmentContext(**values)


class TestGetTimeBasedActions:
    """Tests for get_time_based_actions."""

    def test_upcoming(self):
        """Cutoff in 30h, rule fires 24h before: due in 6h, not yet firing."""
        context = booked(si_cutoff=NOW + timedelta(hours=30))

        actions = get_time_based_actions([SI_RULE], context, NOW)

        assert len(actions) == 1
        action = actions[0]
        assert action.rule_name == "si_cutoff_reminder"
        assert action.fires_at == NOW + timedelta(hours=6)
        assert action.hours_until_trigger == pytest.approx(6.0)
        assert action.is_firing is False
        assert action.owner == "documentation"
        assert action.notify_parties == ["customer"]
        assert action.to_dict()["trigger_event"] == "si_cutoff"

    def test_firing(self):
        context = booked(si_cutoff=NOW + timedelta(hours=20))

        actions = get_time_based_actions([SI_RULE], context, NOW)

        assert actions[0].is_firing is True
        assert actions[0].hours_until_trigger == pytest.approx(-4.0)
        assert actions[0].to_dict()["hours_until_trigger"] == -4.0

    @pytest.mark.parametrize(
        "hours_to_cutoff,included",
        [
            (96, True),  # fires in exactly 72h
            (97, False),  # beyond the lookahead
            (1, True),  # fired 23h ago, still inside the cooldown
            (0, False),  # fired 24h ago, cooldown over
        ],
    )
    def test_window(self, hours_to_cutoff, included):
        context = booked(si_cutoff=NOW + timedelta(hours=hours_to_cutoff))

        assert bool(get_time_based_actions([SI_RULE], context, NOW)) is included

    def test_custom_lookahead(self):
        context = booked(si_cutoff=NOW + timedelta(hours=48))

        assert get_time_based_actions([SI_RULE], context, NOW, lookahead_hours=12) == []

    @pytest.mark.parametrize("conditions", [{}, {"si_submitted": True}])
    def test_unless_condition_must_be_false(self, conditions):
        context = booked(si_cutoff=NOW + timedelta(hours=20), conditions=conditions)

        assert get_time_based_actions([SI_RULE], context, NOW) == []

    @pytest.mark.parametrize("stage", ["DEPARTED", None])
    def test_stage_limited_rule_skipped(self, stage):
        context = booked(stage=stage, si_cutoff=NOW + timedelta(hours=20))

        assert get_time_based_actions([SI_RULE], context, NOW) == []

    def test_missing_date_skipped(self):
        assert get_time_based_actions([SI_RULE, VGM_RULE], booked(), NOW) == []

    def test_sorted_soonest_first(self):
        context = booked(
            si_cutoff=NOW + timedelta(hours=30),
            vgm_cutoff=NOW + timedelta(hours=10),
        )

        actions = get_time_based_actions([SI_RULE, VGM_RULE], context, NOW)

        assert [a.rule_name for a in actions] == ["vgm_cutoff_reminder", "si_cutoff_reminder"]
        assert actions[0].is_firing is True

    def test_naive_dates_treated_as_utc(self):
        context = ShipmentContext(etd=datetime(2026, 1, 11, 9, 0))
        rule = TimeBasedRule(
            name="departure_check",
            trigger_event=TriggerEvent.ETD,
            trigger_offset_hours=0,
            action_verb="Confirm",
            description="Confirm loading",
        )

        actions = get_time_based_actions([rule], context, NOW)

        assert actions[0].hours_until_trigger == pytest.approx(24.0)

    def test_context_from_dict(self):
        context = ShipmentContext.from_dict(
            {
                "stage": "BOOKED",
                "si_cutoff": "2026-01-11T15:00:00Z",
                "conditions": {"si_submitted": False},
            }
        )

        actions = get_time_based_actions([SI_RULE], context, NOW)

        assert actions[0].fires_at == datetime(2026, 1, 10, 15, 0, tzinfo=timezone.utc)


class TestServiceTimeBasedActions:
    """Tests for time-based actions read from the rule cache."""

    def test_uses_enabled_cached_rules(self, cache):
        """The disabled ETA rule never appears."""
        service = ActionRecommendationService(cache)
        context = booked(
            si_cutoff=NOW + timedelta(hours=30),
            vgm_cutoff=NOW + timedelta(hours=20),
            eta=NOW + timedelta(hours=50),
        )

        actions = service.get_time_based_actions(context, now=NOW)

        assert [a.rule_name for a in actions] == ["si_cutoff_reminder", "vgm_cutoff_reminder"]

    def test_configured_lookahead(self, cache):
        service = ActionRecommendationService(cache, ActionConfig(time_action_lookahead_hours=4))
        context = booked(si_cutoff=NOW + timedelta(hours=30))

        assert service.get_time_based_actions(context, now=NOW) == []
