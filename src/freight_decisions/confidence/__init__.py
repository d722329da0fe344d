"""
Confidence scoring module.

Computes five independent signals per classified document, combines them
into a weighted score and maps it to a recommendation band.
"""

from .scorer import (
    ConfidenceService,
    determine_recommendation,
    generate_reasoning,
    weighted_score,
)
from .signals import SignalEvaluator, round_half_up

__all__ = [
    "ConfidenceService",
    "SignalEvaluator",
    "determine_recommendation",
    "generate_reasoning",
    "round_half_up",
    "weighted_score",
]
