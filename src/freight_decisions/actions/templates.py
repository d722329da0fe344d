"""
Action template lookup, rendering, keyword flips and heuristic fallbacks.
"""

import re
from typing import Optional

from ..config import ActionConfig
from ..config_cache import ConfigSnapshot
from ..schemas.actions import (
    ActionRecommendation,
    ActionTemplate,
    PriorityLabel,
    RecommendationSource,
    ShipmentContext,
    TemplateKey,
)
from .priority import matched_keyword

# Document types that never require action
INFORMATIONAL_TYPES = frozenset(
    {
        "tracking_update",
        "schedule_update",
        "acknowledgement",
        "notification",
        "system_notification",
        "pod_proof_of_delivery",
    }
)

# Confirmations close a task unless the customer sent them
CONFIRMATION_TYPES = frozenset(
    {
        "booking_confirmation",
        "vgm_confirmation",
        "si_confirmation",
        "sob_confirmation",
        "rate_confirmation",
    }
)

TEMPLATE_CONFIDENCE = 85
STAGE_SKIPPED_CONFIDENCE = 70
INFORMATIONAL_CONFIDENCE = 70
CONFIRMATION_CONFIDENCE = 75
REVIEW_CONFIDENCE = 50
REVIEW_PRIORITY = 50

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def humanize(value: str) -> str:
    return value.replace("_", " ")


def render_template(
    template: str,
    document_type: str,
    from_party: str,
    context: Optional[ShipmentContext] = None,
) -> str:
    """
    Fill the four supported placeholders.

    {document_type} and {from_party} render with spaces for underscores,
    {customer} defaults to "customer", {booking} to "". Any other
    placeholder renders empty. Nothing in the template is evaluated.
    """
    slots = {
        "document_type": humanize(document_type),
        "from_party": humanize(from_party),
        "customer": (context.customer_name if context else None) or "customer",
        "booking": (context.booking_number if context else None) or "",
    }
    return _PLACEHOLDER.sub(lambda m: slots.get(m.group(1), ""), template)


def apply_flip_keywords(
    template: ActionTemplate, subject: str, body: str
) -> tuple[bool, Optional[str]]:
    """
    Let the email text override the template's has_action.

    A no-action template turns into an action when a flip_to_action keyword
    appears; otherwise an action template turns into no action when a
    flip_to_no_action keyword appears. At most one flip applies.

    Returns:
        (has_action, keyword that flipped it or None)
    """
    if not template.has_action:
        keyword = matched_keyword(template.flip_to_action_keywords, subject, body)
        return (True, keyword) if keyword else (False, None)

    keyword = matched_keyword(template.flip_to_no_action_keywords, subject, body)
    return (False, keyword) if keyword else (True, None)


class TemplateResolver:
    """Finds the template for an incoming document."""

    def __init__(self, config: Optional[ActionConfig] = None):
        self.config = config or ActionConfig()

    def resolve(
        self, snapshot: ConfigSnapshot, document_type: str, from_party: str
    ) -> Optional[ActionTemplate]:
        """Exact (type, party, direction) first, then the wildcard party."""
        direction = self.config.direction
        template = snapshot.template_for(TemplateKey(document_type, from_party, direction))
        if template is None:
            template = snapshot.template_for(
                TemplateKey(document_type, self.config.wildcard_party, direction)
            )
        return template

    def fallback(self, document_type: str, from_party: str) -> ActionRecommendation:
        """Heuristic recommendation when no template exists."""
        owner = self.config.default_owner

        if document_type in INFORMATIONAL_TYPES:
            return self.no_action(
                "Informational - no action required", owner, INFORMATIONAL_CONFIDENCE
            )

        if document_type in CONFIRMATION_TYPES and from_party != "customer":
            return self.no_action(
                "Confirmation received - task already complete", owner, CONFIRMATION_CONFIDENCE
            )

        return ActionRecommendation(
            has_action=True,
            action_type="review",
            action_verb="Review",
            description=f"Review {humanize(document_type)} from {humanize(from_party)}",
            owner=owner,
            priority=REVIEW_PRIORITY,
            priority_label=PriorityLabel.for_score(REVIEW_PRIORITY),
            confidence=REVIEW_CONFIDENCE,
            source=RecommendationSource.FALLBACK,
        )

    def not_applicable(self, template: ActionTemplate, stage: str) -> ActionRecommendation:
        """No-action result for a template limited to other shipment stages."""
        return self.no_action(
            f"{humanize(template.document_type)} not applicable at {stage} stage",
            template.default_owner or self.config.default_owner,
            STAGE_SKIPPED_CONFIDENCE,
            RecommendationSource.TEMPLATE,
        )

    @staticmethod
    def no_action(
        description: str,
        owner: str,
        confidence: int,
        source: RecommendationSource = RecommendationSource.FALLBACK,
        flip_keyword: Optional[str] = None,
    ) -> ActionRecommendation:
        return ActionRecommendation(
            has_action=False,
            action_type="none",
            action_verb="File",
            description=description,
            owner=owner,
            priority=0,
            priority_label=PriorityLabel.LOW,
            confidence=confidence,
            source=source,
            flip_keyword=flip_keyword,
        )
