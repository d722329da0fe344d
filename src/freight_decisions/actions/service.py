"""
Action recommendation service.

Turns a classified document into a concrete operational action: who owns
it, how urgent it is and when it is due. Also lists the time-based actions
a shipment's cutoffs and ETD/ETA make due.
"""

import logging
from datetime import datetime
from typing import Optional

from ..config import ActionConfig
from ..config_cache import ConfigCache
from ..schemas.actions import (
    ActionRecommendation,
    RecommendationSource,
    ShipmentContext,
    TimeBasedAction,
)
from .deadlines import calculate_deadline
from .priority import calculate_priority
from .templates import (
    TEMPLATE_CONFIDENCE,
    TemplateResolver,
    apply_flip_keywords,
    render_template,
)
from .time_based import get_time_based_actions

logger = logging.getLogger(__name__)


class ActionRecommendationService:
    """Recommends actions from cached templates, with heuristic fallbacks."""

    def __init__(self, cache: ConfigCache, config: Optional[ActionConfig] = None):
        self.cache = cache
        self.config = config or ActionConfig()
        self.resolver = TemplateResolver(self.config)

    def get_recommendation(
        self,
        document_type: str,
        from_party: str,
        subject: str,
        body: str,
        email_date: datetime,
        shipment_context: Optional[ShipmentContext] = None,
        now: Optional[datetime] = None,
    ) -> ActionRecommendation:
        """
        Recommend an action for one document.

        Args:
            document_type: Classified document type
            from_party: Sending party role (e.g. ocean_carrier, customer)
            subject: Email subject
            body: Email body
            email_date: When the email was received
            shipment_context: Stage, cutoffs, customer and booking of the shipment
            now: Reference time for cutoff proximity (defaults to current UTC)
        """
        snapshot = self.cache.ensure_loaded()
        template = self.resolver.resolve(snapshot, document_type, from_party)

        if template is None:
            logger.debug(f"No template for {document_type}/{from_party}, using fallback")
            return self.resolver.fallback(document_type, from_party)

        stage = shipment_context.stage if shipment_context else None
        if not template.applies_at(stage):
            logger.debug(f"Template for {document_type}/{from_party} skipped at stage {stage}")
            return self.resolver.not_applicable(template, stage)

        has_action, flip_keyword = apply_flip_keywords(template, subject, body)
        source = RecommendationSource.TEMPLATE
        if flip_keyword:
            source = RecommendationSource.TEMPLATE_FLIPPED
        owner = template.default_owner or self.config.default_owner

        if not has_action:
            description = render_template(
                template.template, document_type, from_party, shipment_context
            )
            if flip_keyword:
                description = f"No action required - flipped by keyword: {flip_keyword}"
            return self.resolver.no_action(
                description, owner, TEMPLATE_CONFIDENCE, source, flip_keyword
            )

        priority, label = calculate_priority(template, subject, body, shipment_context, now)
        deadline, deadline_source = calculate_deadline(template, email_date, shipment_context)

        return ActionRecommendation(
            has_action=True,
            action_type=template.action_type,
            action_verb=template.action_verb,
            description=render_template(
                template.template, document_type, from_party, shipment_context
            ),
            owner=owner,
            priority=priority,
            priority_label=label,
            confidence=TEMPLATE_CONFIDENCE,
            source=source,
            deadline=deadline,
            deadline_source=deadline_source,
            auto_resolve_on=list(template.auto_resolve_on),
            auto_resolve_keywords=list(template.auto_resolve_keywords),
            flip_keyword=flip_keyword,
        )

    def get_time_based_actions(
        self, shipment_context: ShipmentContext, now: Optional[datetime] = None
    ) -> list[TimeBasedAction]:
        """Time-based actions firing now or within the configured lookahead."""
        snapshot = self.cache.ensure_loaded()
        return get_time_based_actions(
            snapshot.time_rules,
            shipment_context,
            now=now,
            lookahead_hours=self.config.time_action_lookahead_hours,
        )
