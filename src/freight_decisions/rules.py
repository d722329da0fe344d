"""
Decision rules file (YAML).

Rules are data: signal weights, expected fields, threshold bands, action
templates, flow rules and time-based rules. They are kept in a YAML file
under version control and imported into the state store, which is what
the engine reads.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .config_cache import ConfigCache, ConfigSnapshot
from .schemas.actions import ActionTemplate, DeadlinePolicy, TimeBasedRule, TriggerEvent
from .schemas.confidence import (
    ConfidenceRule,
    ExpectedField,
    FlowRule,
    FlowRuleType,
    Recommendation,
    Threshold,
)
from .state_store import StateStore

logger = logging.getLogger(__name__)


class RulesFileError(Exception):
    """Raised when a rules file is malformed or contains invalid values."""

    pass


@dataclass
class RuleSet:
    """All decision rules parsed from one file."""

    rules: list[ConfidenceRule]
    expected_fields: list[ExpectedField]
    thresholds: list[Threshold]
    templates: list[ActionTemplate]
    flow_rules: list[FlowRule]
    time_rules: list[TimeBasedRule] = field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return {
            "confidence_rules": len(self.rules),
            "expected_fields": len(self.expected_fields),
            "thresholds": len(self.thresholds),
            "action_templates": len(self.templates),
            "flow_rules": len(self.flow_rules),
            "time_based_rules": len(self.time_rules),
        }


def _section(data: dict, key: str, kind: type) -> Any:
    """Top-level section of the expected YAML kind (empty if absent)."""
    value = data.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        expected = "a mapping" if kind is dict else "a list"
        raise RulesFileError(f"{key} must be {expected}")
    return value


def _string_list(value: Any, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise RulesFileError(f"{where} must be a list")
    return tuple(str(v) for v in value)


def _int(value: Any, where: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise RulesFileError(f"{where} must be an integer, got {value!r}") from e


def _optional_int(value: Any, where: str) -> Optional[int]:
    return None if value is None else _int(value, where)


def _float(value: Any, where: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise RulesFileError(f"{where} must be a number, got {value!r}") from e


def _parse_rules(data: dict) -> list[ConfidenceRule]:
    rules = []
    for name, entry in _section(data, "confidence_rules", dict).items():
        if isinstance(entry, (int, float)):
            entry = {"weight": entry}
        if not isinstance(entry, dict) or "weight" not in entry:
            raise RulesFileError(f"confidence_rules.{name} needs a weight")
        rules.append(
            ConfidenceRule(
                name=str(name),
                weight=_float(entry["weight"], f"confidence_rules.{name}.weight"),
                enabled=bool(entry.get("enabled", True)),
            )
        )
    return rules


def _parse_expected_fields(data: dict) -> list[ExpectedField]:
    fields = []
    for document_type, entries in _section(data, "expected_fields", dict).items():
        if not isinstance(entries, list):
            raise RulesFileError(f"expected_fields.{document_type} must be a list")
        for entry in entries:
            if isinstance(entry, str):
                entry = {"field": entry}
            if not isinstance(entry, dict) or "field" not in entry:
                raise RulesFileError(f"expected_fields.{document_type} entries need a field")
            fields.append(
                ExpectedField(
                    document_type=str(document_type),
                    field_name=str(entry["field"]),
                    is_required=bool(entry.get("required", False)),
                    weight=_float(
                        entry.get("weight", 1.0),
                        f"expected_fields.{document_type}.{entry['field']}.weight",
                    ),
                )
            )
    return fields


def _parse_thresholds(data: dict) -> list[Threshold]:
    thresholds = []
    for i, entry in enumerate(_section(data, "thresholds", list)):
        where = f"thresholds[{i}]"
        if not isinstance(entry, dict):
            raise RulesFileError(f"{where} must be a mapping")
        try:
            thresholds.append(
                Threshold(
                    min_score=_int(entry["min"], f"{where}.min"),
                    max_score=_int(entry["max"], f"{where}.max"),
                    action=Recommendation(entry["action"]),
                )
            )
        except KeyError as e:
            raise RulesFileError(f"{where} is missing {e}") from e
        except ValueError as e:
            raise RulesFileError(f"{where}: {e}") from e
    return thresholds


def _parse_templates(data: dict) -> list[ActionTemplate]:
    templates = []
    for i, entry in enumerate(_section(data, "action_templates", list)):
        where = f"action_templates[{i}]"
        if not isinstance(entry, dict):
            raise RulesFileError(f"{where} must be a mapping")
        missing = [
            k
            for k in ("document_type", "from_party", "action_type", "action_verb", "template")
            if not entry.get(k)
        ]
        if missing:
            raise RulesFileError(f"{where} is missing {', '.join(missing)}")

        deadline_type = entry.get("deadline_type")
        try:
            policy = DeadlinePolicy(deadline_type) if deadline_type else None
        except ValueError as e:
            raise RulesFileError(f"{where}: {e}") from e

        templates.append(
            ActionTemplate(
                document_type=entry["document_type"],
                from_party=entry["from_party"],
                direction=entry.get("direction", "inbound"),
                action_type=entry["action_type"],
                action_verb=entry["action_verb"],
                template=entry["template"],
                default_owner=entry.get("default_owner"),
                deadline_type=policy,
                deadline_days=_optional_int(entry.get("deadline_days"), f"{where}.deadline_days"),
                deadline_cutoff_field=entry.get("deadline_cutoff_field"),
                deadline_cutoff_offset=_optional_int(
                    entry.get("deadline_cutoff_offset"), f"{where}.deadline_cutoff_offset"
                ),
                base_priority=_int(entry.get("base_priority", 60), f"{where}.base_priority"),
                boost_keywords=_string_list(entry.get("boost_keywords"), f"{where}.boost_keywords"),
                boost_amount=_int(entry.get("boost_amount", 0), f"{where}.boost_amount"),
                auto_resolve_on=_string_list(
                    entry.get("auto_resolve_on"), f"{where}.auto_resolve_on"
                ),
                auto_resolve_keywords=_string_list(
                    entry.get("auto_resolve_keywords"), f"{where}.auto_resolve_keywords"
                ),
                has_action=bool(entry.get("has_action", True)),
                applicable_stages=_string_list(
                    entry.get("applicable_stages"), f"{where}.applicable_stages"
                ),
                flip_to_action_keywords=_string_list(
                    entry.get("flip_to_action_keywords"), f"{where}.flip_to_action_keywords"
                ),
                flip_to_no_action_keywords=_string_list(
                    entry.get("flip_to_no_action_keywords"), f"{where}.flip_to_no_action_keywords"
                ),
                enabled=bool(entry.get("enabled", True)),
            )
        )
    return templates


def _parse_flow_rules(data: dict) -> list[FlowRule]:
    flow_rules = []
    for stage, by_type in _section(data, "flow_rules", dict).items():
        if not isinstance(by_type, dict):
            raise RulesFileError(f"flow_rules.{stage} must map document types to rule types")
        for document_type, rule_type in by_type.items():
            try:
                flow_rules.append(
                    FlowRule(
                        stage=str(stage),
                        document_type=str(document_type),
                        rule_type=FlowRuleType(rule_type),
                    )
                )
            except ValueError as e:
                raise RulesFileError(f"flow_rules.{stage}.{document_type}: {e}") from e
    return flow_rules


def _parse_time_rules(data: dict) -> list[TimeBasedRule]:
    time_rules = []
    for i, entry in enumerate(_section(data, "time_based_rules", list)):
        where = f"time_based_rules[{i}]"
        if not isinstance(entry, dict):
            raise RulesFileError(f"{where} must be a mapping")
        missing = [
            k
            for k in ("name", "trigger_event", "offset_hours", "action_verb", "description")
            if entry.get(k) is None
        ]
        if missing:
            raise RulesFileError(f"{where} is missing {', '.join(missing)}")

        try:
            trigger_event = TriggerEvent(entry["trigger_event"])
        except ValueError as e:
            raise RulesFileError(f"{where}: {e}") from e

        time_rules.append(
            TimeBasedRule(
                name=str(entry["name"]),
                trigger_event=trigger_event,
                trigger_offset_hours=_int(entry["offset_hours"], f"{where}.offset_hours"),
                action_verb=str(entry["action_verb"]),
                description=str(entry["description"]),
                owner=str(entry.get("owner") or "operations"),
                applicable_stages=_string_list(
                    entry.get("applicable_stages"), f"{where}.applicable_stages"
                ),
                unless_condition=entry.get("unless"),
                notify_parties=_string_list(entry.get("notify"), f"{where}.notify"),
                urgency=str(entry.get("urgency", "normal")),
                cooldown_hours=_int(entry.get("cooldown_hours", 24), f"{where}.cooldown_hours"),
                enabled=bool(entry.get("enabled", True)),
            )
        )
    return time_rules


def load_rules_file(rules_path: Path) -> RuleSet:
    """
    Parse and validate a rules file.

    Raises:
        RulesFileError: If the file is missing, malformed or invalid
    """
    if not rules_path.exists():
        raise RulesFileError(f"Rules file not found: {rules_path}")

    try:
        with open(rules_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise RulesFileError(f"Invalid YAML in {rules_path}: {e}") from e

    if not isinstance(data, dict):
        raise RulesFileError(f"{rules_path} must contain a YAML mapping")

    rule_set = RuleSet(
        rules=_parse_rules(data),
        expected_fields=_parse_expected_fields(data),
        thresholds=_parse_thresholds(data),
        templates=_parse_templates(data),
        flow_rules=_parse_flow_rules(data),
        time_rules=_parse_time_rules(data),
    )

    errors = ConfigSnapshot.build(
        rules=rule_set.rules,
        expected_fields=rule_set.expected_fields,
        thresholds=rule_set.thresholds,
        templates=rule_set.templates,
        flow_rules=rule_set.flow_rules,
        time_rules=rule_set.time_rules,
    ).validate()
    if errors:
        raise RulesFileError("; ".join(errors))

    return rule_set


def import_rules_file(
    store: StateStore, rules_path: Path, cache: Optional[ConfigCache] = None
) -> RuleSet:
    """
    Replace the stored decision rules with the contents of a rules file.

    The cache, if given, is invalidated so the next call sees the new rules.
    """
    rule_set = load_rules_file(rules_path)
    store.replace_decision_config(
        rules=rule_set.rules,
        expected_fields=rule_set.expected_fields,
        thresholds=rule_set.thresholds,
        templates=rule_set.templates,
        flow_rules=rule_set.flow_rules,
        time_rules=rule_set.time_rules,
    )
    logger.info(f"Imported rules from {rules_path}: {rule_set.summary()}")

    if cache is not None:
        cache.invalidate()

    return rule_set


def create_default_rules(rules_path: Path) -> None:
    """Create a default rules file."""
    default_rules = """# Freight decision rules
#
# Import into the state database with `freight-decisions import-rules`.

# Signal weights (0 or enabled: false removes a signal from the average)
confidence_rules:
  completeness: {weight: 2.0}
  pattern_match: {weight: 1.0}
  sender_trust: {weight: 1.0}
  flow_validation: {weight: 1.0}
  field_consistency: {weight: 1.0}

# Fields expected per document type. Missing required fields cost double.
expected_fields:
  booking_confirmation:
    - {field: booking_number, required: true, weight: 1.0}
    - {field: vessel_name, required: true, weight: 1.0}
    - {field: etd, required: true, weight: 1.0}
    - {field: port_of_loading, weight: 0.5}
    - {field: port_of_discharge, weight: 0.5}
    - {field: si_cutoff, weight: 0.5}
  arrival_notice:
    - {field: mbl_number, required: true, weight: 1.0}
    - {field: eta, required: true, weight: 1.0}
    - {field: container_numbers, required: true, weight: 1.0}
    - {field: port_of_discharge, weight: 0.5}
    - {field: free_time_days, weight: 0.5}
  draft_bl:
    - {field: mbl_number, weight: 1.0}
    - {field: booking_number, required: true, weight: 1.0}
    - {field: shipper_name, required: true, weight: 1.0}
    - {field: consignee_name, required: true, weight: 1.0}
    - {field: container_numbers, weight: 0.5}

# Recommendation bands, inclusive, covering 0-100
thresholds:
  - {min: 85, max: 100, action: accept}
  - {min: 70, max: 84, action: flag_review}
  - {min: 50, max: 69, action: escalate}
  - {min: 0, max: 49, action: human_review}

# Action templates keyed by (document_type, from_party, direction).
# from_party "*" matches any sender. Placeholders: {document_type},
# {from_party}, {customer}, {booking}.
action_templates:
  - document_type: arrival_notice
    from_party: ocean_carrier
    action_type: notify
    action_verb: Forward
    template: "Forward arrival notice to {customer} and arrange delivery for {booking}"
    default_owner: import_ops
    deadline_type: fixed_days
    deadline_days: 2
    base_priority: 60
    boost_keywords: [urgent, demurrage, storage]
    boost_amount: 20
    auto_resolve_on: [container_release, delivery_order]
    auto_resolve_keywords: [released, delivery arranged]
  - document_type: draft_bl
    from_party: ocean_carrier
    action_type: review
    action_verb: Approve
    template: "Check draft BL against SI and send approval for {booking}"
    default_owner: documentation
    deadline_type: cutoff_relative
    deadline_cutoff_field: si_cutoff
    deadline_cutoff_offset: -1
    base_priority: 65
    boost_keywords: [amendment, correction]
    boost_amount: 10
    auto_resolve_on: [final_bl, bl_approval]
    auto_resolve_keywords: [bl approved]
  - document_type: booking_request
    from_party: customer
    action_type: book
    action_verb: Book
    template: "Place booking with carrier for {customer}"
    default_owner: sales_ops
    deadline_type: fixed_days
    deadline_days: 1
    base_priority: 70
    boost_keywords: [urgent, asap]
    boost_amount: 15
    auto_resolve_on: [booking_confirmation]
  - document_type: booking_amendment
    from_party: ocean_carrier
    action_type: review
    action_verb: Review
    template: "Review carrier amendment for {booking} and update {customer}"
    default_owner: documentation
    deadline_type: fixed_days
    deadline_days: 1
    base_priority: 60
    applicable_stages: [BOOKED, SI_SUBMITTED]
    flip_to_no_action_keywords: [no change, for your reference only]
  - document_type: schedule_update
    from_party: ocean_carrier
    action_type: notify
    action_verb: Notify
    template: "Schedule update for {booking}"
    has_action: false
    base_priority: 55
    flip_to_action_keywords: [rolled, omitted, blank sailing]
  - document_type: exception_notice
    from_party: "*"
    action_type: investigate
    action_verb: Investigate
    template: "Investigate {from_party} exception on {booking}"
    deadline_type: urgent
    base_priority: 75
    boost_keywords: [rolled, hold, damage]
    boost_amount: 10
    auto_resolve_keywords: [resolved, cleared]

# Flow rules: stage -> document type -> expected | allowed | unexpected | impossible
flow_rules:
  BOOKED:
    booking_confirmation: expected
    draft_bl: allowed
    arrival_notice: impossible
  SI_SUBMITTED:
    draft_bl: expected
    booking_confirmation: allowed
    arrival_notice: unexpected
  DEPARTED:
    arrival_notice: expected
    draft_bl: unexpected
    booking_request: impossible
  ARRIVED:
    arrival_notice: expected
    container_release: expected
    booking_confirmation: unexpected

# Time-based rules fire relative to a shipment date (si_cutoff, vgm_cutoff,
# cargo_cutoff, etd, eta). offset_hours is negative for "before". A rule with
# `unless` only fires when that shipment condition is known to be false.
time_based_rules:
  - name: si_cutoff_reminder
    trigger_event: si_cutoff
    offset_hours: -24
    action_verb: Submit
    description: "Submit shipping instructions before SI cutoff"
    owner: documentation
    applicable_stages: [BOOKED]
    unless: si_submitted
    notify: [customer]
    urgency: high
  - name: vgm_cutoff_reminder
    trigger_event: vgm_cutoff
    offset_hours: -12
    action_verb: Submit
    description: "Submit VGM before cutoff"
    unless: vgm_submitted
    urgency: high
  - name: arrival_pre_alert
    trigger_event: eta
    offset_hours: -48
    action_verb: Notify
    description: "Send pre-arrival notice to consignee"
    owner: import_ops
    applicable_stages: [DEPARTED]
    notify: [consignee]
"""

    rules_path.parent.mkdir(parents=True, exist_ok=True)
    with open(rules_path, "w") as f:
        f.write(default_rules)
