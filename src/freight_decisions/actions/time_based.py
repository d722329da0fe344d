"""
Time-based actions.

Some work is due because a shipment date approaches (SI cutoff, VGM cutoff,
ETD, ...) rather than because a document arrived. A rule fires at its
trigger date plus trigger_offset_hours and keeps firing for cooldown_hours.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..schemas.actions import ShipmentContext, TimeBasedAction, TimeBasedRule, as_utc

DEFAULT_LOOKAHEAD_HOURS = 72


def get_time_based_actions(
    rules: Iterable[TimeBasedRule],
    context: ShipmentContext,
    now: Optional[datetime] = None,
    lookahead_hours: float = DEFAULT_LOOKAHEAD_HOURS,
) -> list[TimeBasedAction]:
    """
    Actions that are firing or will fire within lookahead_hours, soonest first.

    A rule is skipped when it is limited to other stages, when its
    shipment date is unknown, or when it names an unless_condition that
    is not explicitly False in context.conditions.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    actions = []

    for rule in rules:
        if not rule.applies_at(context.stage):
            continue

        trigger_date = context.date_for(rule.trigger_event)
        if trigger_date is None:
            continue

        if rule.unless_condition and context.conditions.get(rule.unless_condition) is not False:
            continue

        fires_at = as_utc(trigger_date) + timedelta(hours=rule.trigger_offset_hours)
        hours_until = (fires_at - now).total_seconds() / 3600

        if hours_until <= -rule.cooldown_hours or hours_until > lookahead_hours:
            continue

        actions.append(
            TimeBasedAction(
                rule_name=rule.name,
                trigger_event=rule.trigger_event,
                action_verb=rule.action_verb,
                description=rule.description,
                owner=rule.owner,
                urgency=rule.urgency,
                fires_at=fires_at,
                hours_until_trigger=hours_until,
                is_firing=hours_until <= 0,
                notify_parties=list(rule.notify_parties),
            )
        )

    return sorted(actions, key=lambda a: a.hours_until_trigger)
