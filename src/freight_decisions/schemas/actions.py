"""
Action recommendation schema (SSOT).

Templates are loaded from the state store and cached; recommendations are
computed per document and returned to the caller, who owns persistence.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional


class DeadlinePolicy(str, Enum):
    """How an action's due date is derived."""

    FIXED_DAYS = "fixed_days"  # Email date + N calendar days
    CUTOFF_RELATIVE = "cutoff_relative"  # Shipment cutoff + offset days
    URGENT = "urgent"  # Email date + 1 day


class PriorityLabel(str, Enum):
    """Priority bucket for a 0-100 priority score."""

    URGENT = "URGENT"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @classmethod
    def for_score(cls, priority: int) -> "PriorityLabel":
        """Label boundaries are inclusive at 85/70/50."""
        if priority >= 85:
            return cls.URGENT
        elif priority >= 70:
            return cls.HIGH
        elif priority >= 50:
            return cls.MEDIUM
        return cls.LOW


class RecommendationSource(str, Enum):
    """Where a recommendation came from."""

    TEMPLATE = "template"
    TEMPLATE_FLIPPED = "template_flipped"  # has_action overridden by a keyword
    FALLBACK = "fallback"


class TriggerEvent(str, Enum):
    """Shipment date a time-based rule counts from."""

    SI_CUTOFF = "si_cutoff"
    VGM_CUTOFF = "vgm_cutoff"
    CARGO_CUTOFF = "cargo_cutoff"
    ETD = "etd"
    ETA = "eta"


class TemplateKey(NamedTuple):
    """Composite lookup key for action templates."""

    document_type: str
    from_party: str
    direction: str


@dataclass(frozen=True)
class ActionTemplate:
    """Configured action for a (document type, party, direction)."""

    document_type: str
    from_party: str
    action_type: str
    action_verb: str
    template: str
    direction: str = "inbound"
    default_owner: Optional[str] = None
    deadline_type: Optional[DeadlinePolicy] = None
    deadline_days: Optional[int] = None
    deadline_cutoff_field: Optional[str] = None
    deadline_cutoff_offset: Optional[int] = None
    base_priority: int = 60
    boost_keywords: tuple[str, ...] = ()
    boost_amount: int = 0
    auto_resolve_on: tuple[str, ...] = ()
    auto_resolve_keywords: tuple[str, ...] = ()
    # False for documents that normally need no action
    has_action: bool = True
    # Shipment stages the template applies to (empty = all)
    applicable_stages: tuple[str, ...] = ()
    flip_to_action_keywords: tuple[str, ...] = ()
    flip_to_no_action_keywords: tuple[str, ...] = ()
    enabled: bool = True
    id: Optional[int] = None

    def applies_at(self, stage: Optional[str]) -> bool:
        """True unless the template is limited to stages excluding this one."""
        return not self.applicable_stages or not stage or stage in self.applicable_stages

    @property
    def key(self) -> TemplateKey:
        """Composite lookup key."""
        return TemplateKey(self.document_type, self.from_party, self.direction)


@dataclass
class ShipmentContext:
    """Shipment facts the caller knows at recommendation time."""

    stage: Optional[str] = None
    customer_name: Optional[str] = None
    booking_number: Optional[str] = None
    si_cutoff: Optional[datetime] = None
    vgm_cutoff: Optional[datetime] = None
    cargo_cutoff: Optional[datetime] = None
    eta: Optional[datetime] = None
    etd: Optional[datetime] = None
    # Milestone flags, e.g. {"si_submitted": False}
    conditions: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ShipmentContext":
        """Create from a JSON-style mapping with ISO date strings."""
        return cls(
            stage=data.get("stage"),
            customer_name=data.get("customer_name"),
            booking_number=data.get("booking_number"),
            si_cutoff=parse_datetime(data.get("si_cutoff")),
            vgm_cutoff=parse_datetime(data.get("vgm_cutoff")),
            cargo_cutoff=parse_datetime(data.get("cargo_cutoff")),
            eta=parse_datetime(data.get("eta")),
            etd=parse_datetime(data.get("etd")),
            conditions={str(k): bool(v) for k, v in (data.get("conditions") or {}).items()},
        )

    def date_for(self, event: TriggerEvent) -> Optional[datetime]:
        return getattr(self, event.value)


@dataclass(frozen=True)
class ActionRecommendation:
    """Operational action implied by one document."""

    has_action: bool
    action_type: str
    action_verb: str
    description: str
    owner: str
    priority: int
    priority_label: PriorityLabel
    confidence: int
    source: RecommendationSource
    deadline: Optional[datetime] = None
    deadline_source: Optional[str] = None
    auto_resolve_on: list[str] = field(default_factory=list)
    auto_resolve_keywords: list[str] = field(default_factory=list)
    flip_keyword: Optional[str] = None

    @property
    def was_flipped(self) -> bool:
        return self.flip_keyword is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "has_action": self.has_action,
            "was_flipped": self.was_flipped,
            "flip_keyword": self.flip_keyword,
            "action_type": self.action_type,
            "action_verb": self.action_verb,
            "description": self.description,
            "owner": self.owner,
            "priority": self.priority,
            "priority_label": self.priority_label.value,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "deadline_source": self.deadline_source,
            "auto_resolve_on": list(self.auto_resolve_on),
            "auto_resolve_keywords": list(self.auto_resolve_keywords),
            "confidence": self.confidence,
            "source": self.source.value,
        }


@dataclass(frozen=True)
class OpenAction:
    """An action opened for a shipment, completed at most once."""

    id: int
    shipment_id: str
    document_type: str
    description: str
    completed_at: Optional[str] = None  # ISO timestamp
    # Resolution triggers copied from the recommendation (None = not recorded)
    auto_resolve_on: Optional[tuple[str, ...]] = None
    auto_resolve_keywords: Optional[tuple[str, ...]] = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None

    @property
    def has_resolution_triggers(self) -> bool:
        return self.auto_resolve_on is not None or self.auto_resolve_keywords is not None


@dataclass(frozen=True)
class AutoResolveResult:
    """Actions closed by one incoming document."""

    resolved: bool
    resolved_action_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class TimeBasedRule:
    """Action that falls due relative to a shipment date, not a document."""

    name: str
    trigger_event: TriggerEvent
    trigger_offset_hours: int
    action_verb: str
    description: str
    owner: str = "operations"
    applicable_stages: tuple[str, ...] = ()
    # Rule only applies while this shipment condition is False
    unless_condition: Optional[str] = None
    notify_parties: tuple[str, ...] = ()
    urgency: str = "normal"
    cooldown_hours: int = 24
    enabled: bool = True
    id: Optional[int] = None

    def applies_at(self, stage: Optional[str]) -> bool:
        """Stage-limited rules never apply without a known stage."""
        return not self.applicable_stages or stage in self.applicable_stages


@dataclass(frozen=True)
class TimeBasedAction:
    """A time-based rule that is firing or about to fire for a shipment."""

    rule_name: str
    trigger_event: TriggerEvent
    action_verb: str
    description: str
    owner: str
    urgency: str
    fires_at: datetime
    hours_until_trigger: float
    is_firing: bool
    notify_parties: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "rule_name": self.rule_name,
            "trigger_event": self.trigger_event.value,
            "action_verb": self.action_verb,
            "description": self.description,
            "owner": self.owner,
            "urgency": self.urgency,
            "fires_at": self.fires_at.isoformat(),
            "hours_until_trigger": round(self.hours_until_trigger, 1),
            "is_firing": self.is_firing,
            "notify_parties": list(self.notify_parties),
        }


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO date or datetime string (dates become midnight)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)
