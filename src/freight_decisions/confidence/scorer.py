"""
Confidence aggregation.

Runs the five signal evaluators against one rule snapshot, combines them
into a weighted score, maps the score to a recommendation band and appends
an audit record.
"""

import logging
import sqlite3
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..config import ConcernThresholds, ConfidenceConfig
from ..config_cache import ConfigCache, ConfigSnapshot
from ..schemas.confidence import (
    ConfidenceInput,
    ConfidenceResult,
    ConfidenceSignal,
    Recommendation,
    SignalName,
    Threshold,
)
from ..state_store import StateStore
from .signals import SignalEvaluator, round_half_up

logger = logging.getLogger(__name__)

NEUTRAL_AGGREGATE = 50.0


def weighted_score(signals: Iterable[ConfidenceSignal]) -> float:
    """Weighted mean over signals with positive weight (50 if none)."""
    total_weight = 0.0
    weighted_sum = 0.0
    for signal in signals:
        if signal.weight > 0:
            total_weight += signal.weight
            weighted_sum += signal.weighted_score

    if total_weight == 0:
        return NEUTRAL_AGGREGATE
    return weighted_sum / total_weight


def determine_recommendation(score: int, thresholds: Iterable[Threshold]) -> Recommendation:
    """First band (highest min_score first) containing score wins."""
    for threshold in thresholds:
        if threshold.contains(score):
            return threshold.action
    return Recommendation.HUMAN_REVIEW


def generate_reasoning(
    signals: dict[str, ConfidenceSignal],
    overall_score: int,
    concerns: Optional[ConcernThresholds] = None,
) -> list[str]:
    """Human-readable explanation of the score, in a fixed order."""
    concerns = concerns or ConcernThresholds()
    reasons: list[str] = []

    if overall_score >= 85:
        reasons.append(f"High confidence ({overall_score}%) - extraction looks reliable")
    elif overall_score >= 70:
        reasons.append(f"Medium confidence ({overall_score}%) - some concerns flagged")
    elif overall_score >= 50:
        reasons.append(f"Low confidence ({overall_score}%) - recommend verification")
    else:
        reasons.append(f"Very low confidence ({overall_score}%) - likely needs re-extraction")

    completeness = signals[SignalName.COMPLETENESS.value]
    if completeness.score < concerns.completeness:
        missing = completeness.details.get("missing_required") or []
        if missing:
            reasons.append(f"Missing required fields: {', '.join(missing)}")

    pattern = signals[SignalName.PATTERN_MATCH.value]
    if pattern.score == 0:
        reasons.append("No pattern matched - classified by extractor only (AI-only classification)")
    elif pattern.score >= concerns.strong_pattern:
        reasons.append(f"Strong pattern match ({pattern.score}%)")

    sender = signals[SignalName.SENDER_TRUST.value]
    domain = sender.details.get("domain")
    if domain and sender.details.get("is_new_sender"):
        reasons.append(f"New/low-volume sender: {domain}")
    elif sender.score < concerns.sender_trust:
        reasons.append(f"Low sender trust: {domain or 'unknown sender'} ({sender.score}%)")

    flow = signals[SignalName.FLOW_VALIDATION.value]
    if flow.score < concerns.flow_validation:
        reasons.append(f"Flow concern: {flow.details.get('reason', 'unknown')}")

    consistency = signals[SignalName.FIELD_CONSISTENCY.value]
    if consistency.score < concerns.field_consistency:
        issues = consistency.details.get("issues") or []
        if issues:
            reasons.append(f"Field issues: {'; '.join(issues)}")

    return reasons


class ConfidenceService:
    """
    Computes objective confidence for classified documents.

    The service owns a small thread pool for signal evaluation; call
    close() (or use it as a context manager) to release it.
    """

    def __init__(
        self,
        store: StateStore,
        cache: ConfigCache,
        config: Optional[ConfidenceConfig] = None,
    ):
        self.store = store
        self.cache = cache
        self.config = config or ConfidenceConfig()
        self.evaluator = SignalEvaluator(store, self.config)
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="confidence"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ConfidenceService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _evaluate_signals(
        self, inp: ConfidenceInput, snapshot: ConfigSnapshot
    ) -> dict[str, ConfidenceSignal]:
        evaluators = {
            SignalName.COMPLETENESS: self.evaluator.completeness,
            SignalName.PATTERN_MATCH: self.evaluator.pattern_match,
            SignalName.SENDER_TRUST: self.evaluator.sender_trust,
            SignalName.FLOW_VALIDATION: self.evaluator.flow_validation,
            SignalName.FIELD_CONSISTENCY: self.evaluator.field_consistency,
        }
        futures = {
            name: self._executor.submit(fn, inp, snapshot) for name, fn in evaluators.items()
        }
        return {name.value: future.result() for name, future in futures.items()}

    def calculate_confidence(self, inp: ConfidenceInput) -> ConfidenceResult:
        """
        Score one classifier output.

        Args:
            inp: Document type, extracted fields, sender and optional
                pattern/shipment context

        Returns:
            ConfidenceResult with all five signals, the recommendation,
            reasoning and the audit row ID (None if the audit write failed)
        """
        snapshot = self.cache.ensure_loaded()
        signals = self._evaluate_signals(inp, snapshot)

        raw_score = weighted_score(signals.values())
        overall_score = round_half_up(raw_score)
        recommendation = determine_recommendation(overall_score, snapshot.thresholds)
        reasoning = generate_reasoning(signals, overall_score, self.config.concerns)

        audit_id: Optional[int] = None
        try:
            audit_id = self.store.record_confidence_calculation(
                document_id=inp.document_id,
                document_type=inp.document_type,
                sender_domain=inp.sender_domain,
                pattern_id=inp.pattern_id,
                signals=signals,
                raw_score=raw_score,
                overall_score=overall_score,
                recommendation=recommendation.value,
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to record confidence calculation: {e}")

        logger.debug(
            f"Confidence for {inp.document_type}: {overall_score} ({recommendation.value})"
        )

        return ConfidenceResult(
            overall_score=overall_score,
            raw_score=raw_score,
            signals=signals,
            recommendation=recommendation,
            reasoning=reasoning,
            audit_id=audit_id,
        )
