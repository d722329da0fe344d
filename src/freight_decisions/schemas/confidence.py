"""
Confidence scoring schema (SSOT).

Rules, expected fields and threshold bands come from the state store;
signals and results are produced per evaluation and never mutated.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class SignalName(str, Enum):
    """The five confidence signals, also the confidence rule names."""

    COMPLETENESS = "completeness"
    PATTERN_MATCH = "pattern_match"
    SENDER_TRUST = "sender_trust"
    FLOW_VALIDATION = "flow_validation"
    FIELD_CONSISTENCY = "field_consistency"


class Recommendation(str, Enum):
    """
    What to do with an extraction, by confidence band.

    ACCEPT: Use the extraction as-is
    FLAG_REVIEW: Use it, but flag for a human to confirm
    ESCALATE: Re-extract with a stronger extractor
    HUMAN_REVIEW: A human must review before use (universal fallback)
    """

    ACCEPT = "accept"
    FLAG_REVIEW = "flag_review"
    ESCALATE = "escalate"
    HUMAN_REVIEW = "human_review"


class FlowRuleType(str, Enum):
    """How plausible a document type is at a shipment stage."""

    EXPECTED = "expected"
    ALLOWED = "allowed"
    UNEXPECTED = "unexpected"
    IMPOSSIBLE = "impossible"


@dataclass(frozen=True)
class ConfidenceRule:
    """Whether and how strongly a signal contributes."""

    name: str
    weight: float
    enabled: bool = True

    @property
    def effective_weight(self) -> float:
        """Weight actually used (0 when disabled)."""
        return self.weight if self.enabled else 0.0


@dataclass(frozen=True)
class ExpectedField:
    """A field expected in extractions of one document type."""

    document_type: str
    field_name: str
    is_required: bool = False
    weight: float = 1.0


@dataclass(frozen=True)
class Threshold:
    """Score band mapped to a recommendation. Bounds are inclusive."""

    min_score: int
    max_score: int
    action: Recommendation

    def contains(self, score: float) -> bool:
        """Check if score falls inside this band."""
        return self.min_score <= score <= self.max_score


@dataclass(frozen=True)
class FlowRule:
    """Plausibility of a document type at a shipment stage."""

    stage: str
    document_type: str
    rule_type: FlowRuleType


@dataclass(frozen=True)
class ConfidenceSignal:
    """One independently computed indicator feeding the overall score."""

    name: str
    score: int
    weight: float
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def weighted_score(self) -> float:
        """Get the weighted score for this signal."""
        return self.score * self.weight


@dataclass
class ConfidenceInput:
    """Classifier output for one document (the sole scoring input)."""

    document_type: str
    extracted_fields: dict[str, Any]
    sender_email: str
    pattern_id: Optional[str] = None
    pattern_confidence: Optional[float] = None
    shipment_id: Optional[str] = None
    # Known stage short-circuits the shipment lookup
    shipment_stage: Optional[str] = None
    # Upstream document/email identifier, recorded in the audit row
    document_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ConfidenceInput":
        """Create from a classifier payload."""
        return cls(
            document_type=data["document_type"],
            extracted_fields=data.get("extracted_fields") or {},
            sender_email=data.get("sender_email") or "",
            pattern_id=data.get("pattern_id"),
            pattern_confidence=data.get("pattern_confidence"),
            shipment_id=data.get("shipment_id"),
            shipment_stage=data.get("shipment_stage"),
            document_id=data.get("document_id"),
        )

    @property
    def sender_domain(self) -> Optional[str]:
        """Lowercased domain of the sender address, None if unparseable."""
        return parse_sender_domain(self.sender_email)


@dataclass(frozen=True)
class ConfidenceResult:
    """Outcome of one confidence evaluation."""

    overall_score: int
    # Exact weighted mean before rounding
    raw_score: float
    signals: dict[str, ConfidenceSignal]
    recommendation: Recommendation
    reasoning: list[str]
    audit_id: Optional[int] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "overall_score": self.overall_score,
            "raw_score": self.raw_score,
            "recommendation": self.recommendation.value,
            "reasoning": list(self.reasoning),
            "audit_id": self.audit_id,
            "signals": {
                name: {
                    "score": s.score,
                    "weight": s.weight,
                    "details": s.details,
                }
                for name, s in self.signals.items()
            },
        }


def parse_sender_domain(sender_email: Optional[str]) -> Optional[str]:
    """Extract the lowercased domain from an email address."""
    if not sender_email or "@" not in sender_email:
        return None
    domain = sender_email.rsplit("@", 1)[1].strip().strip(">").lower()
    return domain or None
