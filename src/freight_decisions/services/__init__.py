"""Decision services orchestrating scoring, recommendations and auto-resolution."""

from freight_decisions.services.decision_service import (
    ClassifiedDocument,
    DecisionService,
    DocumentDecision,
)

__all__ = ["ClassifiedDocument", "DecisionService", "DocumentDecision"]
