"""Standard decision rules shared by the tests."""

from freight_decisions.schemas import (
    ActionTemplate,
    ConfidenceRule,
    DeadlinePolicy,
    ExpectedField,
    FlowRule,
    FlowRuleType,
    Recommendation,
    Threshold,
    TimeBasedRule,
    TriggerEvent,
)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def standard_rules() -> list[ConfidenceRule]:
    return [
        ConfidenceRule("completeness", 2.0),
        ConfidenceRule("pattern_match", 1.0),
        ConfidenceRule("sender_trust", 1.0),
        ConfidenceRule("flow_validation", 1.0),
        ConfidenceRule("field_consistency", 1.0),
    ]


def standard_fields() -> list[ExpectedField]:
    # 3 required (cost 2 each) + 4 optional (cost 1 each) = max penalty 10
    doc = "booking_confirmation"
    return [
        ExpectedField(doc, "booking_number", is_required=True),
        ExpectedField(doc, "vessel_name", is_required=True),
        ExpectedField(doc, "etd", is_required=True),
        ExpectedField(doc, "eta"),
        ExpectedField(doc, "port_of_loading"),
        ExpectedField(doc, "port_of_discharge"),
        ExpectedField(doc, "si_cutoff"),
    ]


def standard_thresholds() -> list[Threshold]:
    return [
        Threshold(0, 49, Recommendation.HUMAN_REVIEW),
        Threshold(85, 100, Recommendation.ACCEPT),
        Threshold(50, 69, Recommendation.ESCALATE),
        Threshold(70, 84, Recommendation.FLAG_REVIEW),
    ]


def standard_templates() -> list[ActionTemplate]:
    return [
        ActionTemplate(
            document_type="arrival_notice",
            from_party="ocean_carrier",
            action_type="notify",
            action_verb="Forward",
            template="Forward {document_type} from {from_party} to {customer} ({booking})",
            default_owner="import_ops",
            deadline_type=DeadlinePolicy.FIXED_DAYS,
            deadline_days=2,
            base_priority=60,
            boost_keywords=("urgent",),
            boost_amount=20,
            auto_resolve_on=("container_release",),
            auto_resolve_keywords=("delivery arranged",),
        ),
        ActionTemplate(
            document_type="draft_bl",
            from_party="ocean_carrier",
            action_type="review",
            action_verb="Approve",
            template="Approve draft BL for {booking}",
            deadline_type=DeadlinePolicy.CUTOFF_RELATIVE,
            deadline_cutoff_field="si_cutoff",
            base_priority=65,
            auto_resolve_on=("final_bl",),
        ),
        ActionTemplate(
            document_type="exception_notice",
            from_party="*",
            action_type="investigate",
            action_verb="Investigate",
            template="Investigate {from_party} exception",
            deadline_type=DeadlinePolicy.URGENT,
            base_priority=75,
            auto_resolve_keywords=("cleared",),
        ),
        ActionTemplate(
            document_type="rate_request",
            from_party="customer",
            action_type="quote",
            action_verb="Quote",
            template="Send quote to {customer}",
            enabled=False,
        ),
    ]


def standard_flow_rules() -> list[FlowRule]:
    return [
        FlowRule("BOOKED", "booking_confirmation", FlowRuleType.EXPECTED),
    ]


def standard_time_rules() -> list[TimeBasedRule]:
    return [
        TimeBasedRule(
            name="si_cutoff_reminder",
            trigger_event=TriggerEvent.SI_CUTOFF,
            trigger_offset_hours=-24,
            action_verb="Submit",
            description="Submit SI before cutoff",
            owner="documentation",
            applicable_stages=("BOOKED",),
            unless_condition="si_submitted",
            notify_parties=("customer",),
            urgency="high",
        ),
        TimeBasedRule(
            name="vgm_cutoff_reminder",
            trigger_event=TriggerEvent.VGM_CUTOFF,
            trigger_offset_hours=-12,
            action_verb="Submit",
            description="Submit VGM before cutoff",
        ),
        TimeBasedRule(
            name="eta_pre_alert",
            trigger_event=TriggerEvent.ETA,
            trigger_offset_hours=-48,
            action_verb="Notify",
            description="Send pre-arrival notice",
            enabled=False,
        ),
    ]
