"""Decision service for classified documents.

Runs confidence scoring, the action recommendation and auto-resolution for
one classified document, and optionally opens the recommended action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from freight_decisions.actions import ActionRecommendationService, AutoResolveMatcher
from freight_decisions.config import Config
from freight_decisions.config_cache import ConfigCache
from freight_decisions.confidence import ConfidenceService
from freight_decisions.schemas.actions import (
    ActionRecommendation,
    AutoResolveResult,
    ShipmentContext,
    parse_datetime,
)
from freight_decisions.schemas.confidence import ConfidenceInput, ConfidenceResult
from freight_decisions.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class ClassifiedDocument:
    """One email document as delivered by the classifier."""

    document_type: str
    from_party: str
    sender_email: str
    email_date: datetime
    subject: str = ""
    body: str = ""
    extracted_fields: dict[str, Any] = field(default_factory=dict)
    pattern_id: str | None = None
    pattern_confidence: float | None = None
    shipment_id: str | None = None
    document_id: str | None = None
    shipment_context: ShipmentContext | None = None

    @classmethod
    def from_dict(cls, data: dict) -> ClassifiedDocument:
        """Create from a JSON payload (ISO date strings)."""
        context = data.get("shipment_context")
        email_date = parse_datetime(data.get("email_date"))
        if email_date is None:
            raise ValueError("email_date is required")
        return cls(
            document_type=data["document_type"],
            from_party=data.get("from_party") or "unknown",
            sender_email=data.get("sender_email") or "",
            email_date=email_date,
            subject=data.get("subject") or "",
            body=data.get("body") or "",
            extracted_fields=data.get("extracted_fields") or {},
            pattern_id=data.get("pattern_id"),
            pattern_confidence=data.get("pattern_confidence"),
            shipment_id=data.get("shipment_id"),
            document_id=data.get("document_id"),
            shipment_context=ShipmentContext.from_dict(context) if context else None,
        )

    def to_confidence_input(self) -> ConfidenceInput:
        return ConfidenceInput(
            document_type=self.document_type,
            extracted_fields=self.extracted_fields,
            sender_email=self.sender_email,
            pattern_id=self.pattern_id,
            pattern_confidence=self.pattern_confidence,
            shipment_id=self.shipment_id,
            shipment_stage=self.shipment_context.stage if self.shipment_context else None,
            document_id=self.document_id,
        )


@dataclass
class DocumentDecision:
    """Everything decided about one document."""

    confidence: ConfidenceResult
    action: ActionRecommendation
    auto_resolve: AutoResolveResult | None = None
    created_action_id: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "confidence": self.confidence.to_dict(),
            "action": self.action.to_dict(),
            "auto_resolve": (
                {
                    "resolved": self.auto_resolve.resolved,
                    "resolved_action_ids": list(self.auto_resolve.resolved_action_ids),
                }
                if self.auto_resolve
                else None
            ),
            "created_action_id": self.created_action_id,
        }


class DecisionService:
    """Facade over confidence scoring, recommendations and auto-resolution.

    All components share one state store and one rule cache.
    """

    def __init__(
        self,
        config: Config,
        store: StateStore,
        cache: ConfigCache | None = None,
    ) -> None:
        """Initialize the decision service.

        Args:
            config: Application configuration.
            store: State store holding rules, statistics and actions.
            cache: Rule cache (created from config if omitted).
        """
        self.config = config
        self.store = store
        self.cache = cache or ConfigCache(store, ttl_seconds=config.cache.ttl_seconds)
        self.confidence = ConfidenceService(store, self.cache, config.confidence)
        self.actions = ActionRecommendationService(self.cache, config.actions)
        self.auto_resolver = AutoResolveMatcher(store, self.cache, config.actions)

    @classmethod
    def from_config(cls, config: Config) -> DecisionService:
        """Open the configured state store and build the service."""
        return cls(config, StateStore(config.state_db_path))

    def close(self) -> None:
        self.confidence.close()

    def __enter__(self) -> DecisionService:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def process_document(
        self,
        document: ClassifiedDocument,
        create_action: bool = False,
        now: datetime | None = None,
    ) -> DocumentDecision:
        """Decide confidence and action for one document.

        Auto-resolution runs before a new action is opened, so a document
        never resolves the action it creates itself.

        Args:
            document: The classified document.
            create_action: Persist the recommended action when it has one.
            now: Reference time for cutoff proximity.
        """
        confidence = self.confidence.calculate_confidence(document.to_confidence_input())

        action = self.actions.get_recommendation(
            document_type=document.document_type,
            from_party=document.from_party,
            subject=document.subject,
            body=document.body,
            email_date=document.email_date,
            shipment_context=document.shipment_context,
            now=now,
        )

        auto_resolve = None
        created_action_id = None

        if document.shipment_id:
            auto_resolve = self.auto_resolver.check_auto_resolve(
                document.shipment_id,
                document.document_type,
                document.subject,
                document.body,
            )

            if create_action and action.has_action:
                created_action_id = self.store.create_action(
                    shipment_id=document.shipment_id,
                    document_type=document.document_type,
                    description=action.description,
                    action_type=action.action_type,
                    owner=action.owner,
                    priority=action.priority,
                    deadline=action.deadline,
                    auto_resolve_on=action.auto_resolve_on,
                    auto_resolve_keywords=action.auto_resolve_keywords,
                    source_document_id=document.document_id,
                )
                logger.info(
                    f"[{document.shipment_id}] Opened action {created_action_id}: "
                    f"{action.description}"
                )
        elif create_action and action.has_action:
            logger.warning(
                f"Not opening action for {document.document_type}: document has no shipment_id"
            )

        return DocumentDecision(
            confidence=confidence,
            action=action,
            auto_resolve=auto_resolve,
            created_action_id=created_action_id,
        )
