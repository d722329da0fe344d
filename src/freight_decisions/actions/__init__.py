"""
Action recommendation module.

Template lookup and rendering, keyword flips, priority and deadline
calculation, time-based actions, and auto-resolution of open shipment
actions.
"""

from .auto_resolve import AutoResolveMatcher
from .deadlines import calculate_deadline
from .priority import calculate_priority
from .service import ActionRecommendationService
from .templates import TemplateResolver, apply_flip_keywords, render_template
from .time_based import get_time_based_actions

__all__ = [
    "ActionRecommendationService",
    "AutoResolveMatcher",
    "TemplateResolver",
    "apply_flip_keywords",
    "calculate_deadline",
    "calculate_priority",
    "get_time_based_actions",
    "render_template",
]
