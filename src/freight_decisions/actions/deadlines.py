"""
Deadline calculation.

Exactly one policy applies per template:
- fixed_days: email date + N calendar days
- cutoff_relative: a shipment cutoff + offset days (default -2)
- urgent: email date + 1 day
"""

from datetime import datetime, timedelta
from typing import Optional

from ..schemas.actions import ActionTemplate, DeadlinePolicy, ShipmentContext

DEFAULT_CUTOFF_FIELD = "si_cutoff"
DEFAULT_CUTOFF_OFFSET = -2

# Accepted names for each cutoff, mapped to (context attribute, label)
CUTOFF_FIELDS = {
    "si_cutoff": ("si_cutoff", "SI"),
    "siCutoff": ("si_cutoff", "SI"),
    "vgm_cutoff": ("vgm_cutoff", "VGM"),
    "vgmCutoff": ("vgm_cutoff", "VGM"),
    "cargo_cutoff": ("cargo_cutoff", "Cargo"),
    "cargoCutoff": ("cargo_cutoff", "Cargo"),
}

Deadline = tuple[Optional[datetime], Optional[str]]


def _plural_days(days: int) -> str:
    return f"{days} day(s)"


def cutoff_source(offset: int, label: str) -> str:
    if offset < 0:
        return f"{_plural_days(abs(offset))} before {label} cutoff"
    if offset > 0:
        return f"{_plural_days(offset)} after {label} cutoff"
    return f"On {label} cutoff"


def calculate_deadline(
    template: ActionTemplate,
    email_date: datetime,
    context: Optional[ShipmentContext] = None,
) -> Deadline:
    """Return (deadline, human-readable source), or (None, None)."""
    policy = template.deadline_type

    if policy == DeadlinePolicy.FIXED_DAYS:
        if template.deadline_days is None:
            return None, None
        return (
            email_date + timedelta(days=template.deadline_days),
            f"{_plural_days(template.deadline_days)} from receipt",
        )

    if policy == DeadlinePolicy.CUTOFF_RELATIVE:
        if context is None:
            return None, None
        field_name = template.deadline_cutoff_field or DEFAULT_CUTOFF_FIELD
        if field_name not in CUTOFF_FIELDS:
            return None, None
        attribute, label = CUTOFF_FIELDS[field_name]
        cutoff = getattr(context, attribute)
        if cutoff is None:
            return None, None
        offset = template.deadline_cutoff_offset
        if offset is None:
            offset = DEFAULT_CUTOFF_OFFSET
        return cutoff + timedelta(days=offset), cutoff_source(offset, label)

    if policy == DeadlinePolicy.URGENT:
        return email_date + timedelta(days=1), "Urgent - within 24 hours"

    return None, None
