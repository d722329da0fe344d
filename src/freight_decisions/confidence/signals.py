"""
Confidence signal evaluators.

Each evaluator produces one ConfidenceSignal (score 0-100, the configured
weight and explanatory details). Lookup failures degrade to a neutral score
with a `reason` detail instead of raising.
"""

import logging
import math
import sqlite3
from typing import Any, Optional

from ..config import ConfidenceConfig
from ..config_cache import ConfigSnapshot
from ..schemas.actions import as_utc, parse_datetime
from ..schemas.confidence import ConfidenceInput, ConfidenceSignal, SignalName
from ..state_store import StateStore

logger = logging.getLogger(__name__)

IDENTIFIER_FIELDS = ("booking_number", "mbl_number", "hbl_number")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def is_missing(value: Any) -> bool:
    """A field is missing when absent, None, blank or an empty collection."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class SignalEvaluator:
    """
    Computes the five confidence signals.

    The evaluators are independent of each other: each one reads the
    snapshot and the store but never writes.
    """

    def __init__(self, store: StateStore, config: Optional[ConfidenceConfig] = None):
        self.store = store
        self.config = config or ConfidenceConfig()

    def _signal(
        self, name: SignalName, score: int, snapshot: ConfigSnapshot, details: dict[str, Any]
    ) -> ConfidenceSignal:
        return ConfidenceSignal(
            name=name.value,
            score=score,
            weight=snapshot.weight_for(name.value),
            details=details,
        )

    # Signal 1: Completeness

    def completeness(self, inp: ConfidenceInput, snapshot: ConfigSnapshot) -> ConfidenceSignal:
        """
        Weighted share of expected fields that are present.

        Missing required fields cost twice their weight.
        """
        try:
            expected = snapshot.fields_for(inp.document_type)
            if not expected:
                return self._signal(
                    SignalName.COMPLETENESS,
                    self.config.neutral_score,
                    snapshot,
                    {"reason": f"No expected fields configured for {inp.document_type}"},
                )

            fields = inp.extracted_fields or {}
            penalty = 0.0
            max_penalty = 0.0
            checked = []
            missing_required = []
            missing_optional = []

            for f in expected:
                cost = f.weight * (2 if f.is_required else 1)
                max_penalty += cost
                present = not is_missing(fields.get(f.field_name))
                if not present:
                    penalty += cost
                    (missing_required if f.is_required else missing_optional).append(f.field_name)
                checked.append(
                    {
                        "field": f.field_name,
                        "required": f.is_required,
                        "weight": f.weight,
                        "present": present,
                    }
                )

            if max_penalty == 0:
                return self._signal(
                    SignalName.COMPLETENESS,
                    self.config.neutral_score,
                    snapshot,
                    {"reason": "Expected fields carry no weight", "fields": checked},
                )

            score = clamp_score(100 * (1 - penalty / max_penalty))
            return self._signal(
                SignalName.COMPLETENESS,
                score,
                snapshot,
                {
                    "fields": checked,
                    "missing_required": missing_required,
                    "missing_optional": missing_optional,
                    "penalty": penalty,
                    "max_penalty": max_penalty,
                },
            )
        except Exception as e:
            logger.warning(f"Completeness calculation failed for {inp.document_type}: {e}")
            return self._signal(
                SignalName.COMPLETENESS,
                self.config.neutral_score,
                snapshot,
                {"reason": "Completeness calculation failed", "error": str(e)},
            )

    # Signal 2: Pattern match

    def pattern_match(self, inp: ConfidenceInput, snapshot: ConfigSnapshot) -> ConfidenceSignal:
        """Pattern confidence averaged with the pattern's historical reliability."""
        if not inp.pattern_id:
            return self._signal(
                SignalName.PATTERN_MATCH,
                0,
                snapshot,
                {"reason": "No pattern matched - classified by extractor only"},
            )

        try:
            pattern = self.store.get_detection_pattern(inp.pattern_id)
        except sqlite3.Error as e:
            logger.warning(f"Pattern lookup failed for {inp.pattern_id}: {e}")
            return self._signal(
                SignalName.PATTERN_MATCH,
                self.config.neutral_score,
                snapshot,
                {"reason": "Pattern lookup failed", "pattern_id": inp.pattern_id, "error": str(e)},
            )

        if pattern is None:
            if inp.pattern_confidence is not None:
                score = clamp_score(inp.pattern_confidence)
            else:
                score = self.config.unknown_pattern_score
            return self._signal(
                SignalName.PATTERN_MATCH,
                score,
                snapshot,
                {
                    "reason": "Pattern ID not found",
                    "pattern_id": inp.pattern_id,
                    "pattern_confidence": inp.pattern_confidence,
                },
            )

        if pattern.hit_count > 0:
            reliability = clamp_score(100 * (1 - pattern.false_positive_count / pattern.hit_count))
        else:
            reliability = self.config.unproven_pattern_reliability

        confidence = inp.pattern_confidence
        if confidence is None:
            confidence = self.config.default_pattern_confidence

        return self._signal(
            SignalName.PATTERN_MATCH,
            clamp_score((confidence + reliability) / 2),
            snapshot,
            {
                "pattern_id": pattern.id,
                "pattern_type": pattern.pattern_type,
                "pattern_confidence": confidence,
                "hit_count": pattern.hit_count,
                "false_positive_count": pattern.false_positive_count,
                "reliability": reliability,
            },
        )

    # Signal 3: Sender trust

    def sender_trust(self, inp: ConfidenceInput, snapshot: ConfigSnapshot) -> ConfidenceSignal:
        """Historical extraction accuracy of the sender's domain."""
        domain = inp.sender_domain
        if not domain:
            return self._signal(
                SignalName.SENDER_TRUST,
                self.config.invalid_sender_score,
                snapshot,
                {"reason": "Invalid sender email format"},
            )

        try:
            record = self.store.get_sender_trust(domain)
        except sqlite3.Error as e:
            logger.warning(f"Sender trust lookup failed for {domain}: {e}")
            return self._signal(
                SignalName.SENDER_TRUST,
                self.config.neutral_score,
                snapshot,
                {"reason": "Sender trust lookup failed", "domain": domain, "error": str(e)},
            )

        trust = record.trust_score if record else self.config.unknown_sender_trust
        total = record.total_emails if record else 0

        return self._signal(
            SignalName.SENDER_TRUST,
            clamp_score(trust * 100),
            snapshot,
            {
                "domain": domain,
                "trust_score": trust,
                "total_emails": total,
                "correct_extractions": record.correct_extractions if record else 0,
                "is_new_sender": total < self.config.new_sender_min_emails,
            },
        )

    # Signal 4: Flow validation

    def flow_validation(self, inp: ConfidenceInput, snapshot: ConfigSnapshot) -> ConfidenceSignal:
        """Plausibility of the document type at the shipment's current stage."""
        scores = self.config.flow_scores
        stage = inp.shipment_stage

        if not stage and inp.shipment_id:
            try:
                stage = self.store.get_shipment_stage(inp.shipment_id)
            except sqlite3.Error as e:
                logger.warning(f"Shipment stage lookup failed for {inp.shipment_id}: {e}")
                return self._signal(
                    SignalName.FLOW_VALIDATION,
                    scores.no_context,
                    snapshot,
                    {"reason": "Flow validation query failed", "error": str(e)},
                )

        if not stage:
            return self._signal(
                SignalName.FLOW_VALIDATION,
                scores.no_context,
                snapshot,
                {"reason": "No shipment context for flow validation"},
            )

        rule = snapshot.flow_rule(stage, inp.document_type)
        doc = inp.document_type
        if rule is None:
            rule_type = None
            reason = f"No flow rule for {doc} at stage {stage}"
        else:
            rule_type = rule.rule_type.value
            reason = f"{doc} is {rule_type} at stage {stage}"

        return self._signal(
            SignalName.FLOW_VALIDATION,
            scores.score_for(rule_type),
            snapshot,
            {"stage": stage, "document_type": doc, "rule_type": rule_type, "reason": reason},
        )

    # Signal 5: Field consistency

    def field_consistency(
        self, inp: ConfidenceInput, snapshot: ConfigSnapshot
    ) -> ConfidenceSignal:
        """Cross-field sanity checks. Each issue costs a fixed penalty."""
        fields = inp.extracted_fields or {}
        issues: list[str] = []

        etd = self._parse_date(fields.get("etd"))
        eta = self._parse_date(fields.get("eta"))
        if etd is not None and eta is not None and as_utc(etd) > as_utc(eta):
            issues.append("ETD is after ETA - verify if multi-leg shipment")

        numbers = fields.get("container_numbers")
        count = fields.get("container_count")
        if isinstance(numbers, (list, tuple)) and numbers and not is_missing(count):
            try:
                expected_count = int(count)
            except (TypeError, ValueError):
                expected_count = None
            if expected_count is not None and expected_count != len(numbers):
                issues.append(
                    f"Container count ({expected_count}) doesn't match list ({len(numbers)})"
                )

        low, high = self.config.identifier_min_length, self.config.identifier_max_length
        for name in IDENTIFIER_FIELDS:
            value = fields.get(name)
            if is_missing(value):
                continue
            length = len(str(value).strip())
            if length < low or length > high:
                issues.append(f"Unusual {name.replace('_', ' ')} length: {length} chars")

        score = max(
            self.config.consistency_floor,
            100 - self.config.consistency_issue_penalty * len(issues),
        )
        return self._signal(
            SignalName.FIELD_CONSISTENCY,
            score,
            snapshot,
            {
                "issues_found": len(issues),
                "issues": issues,
                "fields_checked": ["etd_vs_eta", "container_count", *IDENTIFIER_FIELDS],
            },
        )

    @staticmethod
    def _parse_date(value: Any):
        if is_missing(value):
            return None
        try:
            return parse_datetime(value)
        except (TypeError, ValueError):
            return None
