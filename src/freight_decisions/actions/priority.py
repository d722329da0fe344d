"""
Priority calculation for template-backed actions.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from ..schemas.actions import ActionTemplate, PriorityLabel, ShipmentContext, as_utc

# (max days until SI cutoff, boost), checked in order
CUTOFF_BOOSTS = ((1, 25), (3, 15), (5, 10))
INVESTIGATE_BOOST = 10


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from now to target, floored (negative once passed)."""
    seconds = (as_utc(target) - as_utc(now)).total_seconds()
    return math.floor(seconds / 86400)


def matched_keyword(keywords, subject: str, body: str) -> Optional[str]:
    """First keyword found in subject + body (case-insensitive), or None."""
    text = f"{subject or ''} {body or ''}".lower()
    for kw in keywords:
        if kw and kw.lower() in text:
            return kw
    return None


def keyword_in_text(keywords, subject: str, body: str) -> bool:
    """Case-insensitive substring match against subject + body."""
    return matched_keyword(keywords, subject, body) is not None


def calculate_priority(
    template: ActionTemplate,
    subject: str,
    body: str,
    context: Optional[ShipmentContext] = None,
    now: Optional[datetime] = None,
) -> tuple[int, PriorityLabel]:
    """
    Compute a 0-100 priority and its label.

    Starts at base_priority, then adds the keyword boost, the SI cutoff
    proximity boost and the investigate boost.
    """
    priority = template.base_priority

    if template.boost_keywords and keyword_in_text(template.boost_keywords, subject, body):
        priority += template.boost_amount

    if context is not None and context.si_cutoff is not None:
        days = days_until(context.si_cutoff, now or datetime.now(timezone.utc))
        for max_days, boost in CUTOFF_BOOSTS:
            if days <= max_days:
                priority += boost
                break

    if template.action_type == "investigate":
        priority += INVESTIGATE_BOOST

    priority = max(0, min(100, priority))
    return priority, PriorityLabel.for_score(priority)
