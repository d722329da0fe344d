"""
SSOT (Single Source of Truth) schemas for the decision engine.

These canonical schemas are the ONLY models used across all modules.
"""

from .actions import (
    ActionRecommendation,
    ActionTemplate,
    AutoResolveResult,
    DeadlinePolicy,
    OpenAction,
    PriorityLabel,
    RecommendationSource,
    ShipmentContext,
    TemplateKey,
    TimeBasedAction,
    TimeBasedRule,
    TriggerEvent,
    as_utc,
    parse_datetime,
)
from .confidence import (
    ConfidenceInput,
    ConfidenceResult,
    ConfidenceRule,
    ConfidenceSignal,
    ExpectedField,
    FlowRule,
    FlowRuleType,
    Recommendation,
    SignalName,
    Threshold,
    parse_sender_domain,
)

__all__ = [
    # Confidence (input, rules, result)
    "ConfidenceInput",
    "ConfidenceResult",
    "ConfidenceRule",
    "ConfidenceSignal",
    "ExpectedField",
    "FlowRule",
    "FlowRuleType",
    "Recommendation",
    "SignalName",
    "Threshold",
    "parse_sender_domain",
    # Actions
    "ActionRecommendation",
    "ActionTemplate",
    "AutoResolveResult",
    "DeadlinePolicy",
    "OpenAction",
    "PriorityLabel",
    "RecommendationSource",
    "ShipmentContext",
    "TemplateKey",
    "TimeBasedAction",
    "TimeBasedRule",
    "TriggerEvent",
    "as_utc",
    "parse_datetime",
]
