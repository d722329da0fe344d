"""Tests for the individual confidence signals."""

import sqlite3
from unittest import mock

import pytest

from freight_decisions.config_cache import ConfigSnapshot
from freight_decisions.confidence import SignalEvaluator, round_half_up
from freight_decisions.schemas import ConfidenceInput, ExpectedField
from rule_sets import standard_fields, standard_flow_rules, standard_rules

COMPLETE_BOOKING = {
    "booking_number": "MAEU1234567",
    "vessel_name": "MAERSK ELBA",
    "etd": "2026-01-05",
    "eta": "2026-01-25",
    "port_of_loading": "CNSHA",
    "port_of_discharge": "DEHAM",
    "si_cutoff": "2026-01-02T12:00:00Z",
}


def make_input(**overrides) -> ConfidenceInput:
    values = {
        "document_type": "booking_confirmation",
        "extracted_fields": dict(COMPLETE_BOOKING),
        "sender_email": "docs@maersk.com",
    }
    values.update(overrides)
    return ConfidenceInput(**values)


@pytest.fixture
def snapshot() -> ConfigSnapshot:
    return ConfigSnapshot.build(
        rules=standard_rules(),
        expected_fields=standard_fields(),
        flow_rules=standard_flow_rules(),
    )


@pytest.fixture
def evaluator(store) -> SignalEvaluator:
    return SignalEvaluator(store)


class TestRounding:
    """Tests for score rounding."""

    @pytest.mark.parametrize(
        "value,expected",
        [(2.5, 3), (65.5, 66), (65.83, 66), (70.4999, 70), (0.0, 0), (99.5, 100)],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestCompleteness:
    """Tests for the completeness signal."""

    def test_all_present(self, evaluator, snapshot):
        signal = evaluator.completeness(make_input(), snapshot)

        assert signal.score == 100
        assert signal.weight == 2.0
        assert signal.details["missing_required"] == []

    def test_missing_optional(self, evaluator, snapshot):
        """One optional field of max penalty 10 costs 10 points."""
        fields = dict(COMPLETE_BOOKING)
        del fields["si_cutoff"]

        signal = evaluator.completeness(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 90
        assert signal.details["missing_optional"] == ["si_cutoff"]

    def test_missing_required_costs_double(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, vessel_name=None)

        signal = evaluator.completeness(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 80
        assert signal.details["missing_required"] == ["vessel_name"]

    def test_blank_and_empty_values_are_missing(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, port_of_loading="   ", port_of_discharge=[])

        signal = evaluator.completeness(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 80
        assert set(signal.details["missing_optional"]) == {"port_of_loading", "port_of_discharge"}

    def test_no_expected_fields(self, evaluator, snapshot):
        signal = evaluator.completeness(make_input(document_type="invoice"), snapshot)

        assert signal.score == 50
        assert "No expected fields" in signal.details["reason"]

    def test_zero_weight_fields(self, evaluator):
        snapshot = ConfigSnapshot.build(
            expected_fields=[ExpectedField("invoice", "amount", weight=0.0)]
        )

        signal = evaluator.completeness(make_input(document_type="invoice"), snapshot)

        assert signal.score == 50

    def test_failure_is_neutral(self, evaluator, snapshot):
        """Unusable extracted fields degrade to the neutral score."""
        signal = evaluator.completeness(make_input(extracted_fields=["not", "a", "dict"]), snapshot)

        assert signal.score == 50
        assert signal.details["reason"] == "Completeness calculation failed"


class TestPatternMatch:
    """Tests for the pattern-match signal."""

    def test_no_pattern_is_zero(self, evaluator, snapshot):
        """Without a pattern the score is 0 regardless of confidence."""
        signal = evaluator.pattern_match(make_input(pattern_confidence=95), snapshot)

        assert signal.score == 0
        assert "extractor only" in signal.details["reason"]

    def test_unknown_pattern_uses_confidence(self, evaluator, snapshot):
        signal = evaluator.pattern_match(
            make_input(pattern_id="missing", pattern_confidence=88), snapshot
        )
        assert signal.score == 88

    def test_unknown_pattern_without_confidence(self, evaluator, snapshot):
        signal = evaluator.pattern_match(make_input(pattern_id="missing"), snapshot)
        assert signal.score == 70

    def test_unproven_pattern(self, evaluator, snapshot, store):
        """No hits yet: reliability 80, default confidence 80."""
        store.upsert_detection_pattern("p1", "subject", "booking_confirmation")

        signal = evaluator.pattern_match(make_input(pattern_id="p1"), snapshot)

        assert signal.score == 80
        assert signal.details["reliability"] == 80

    def test_reliability_from_history(self, evaluator, snapshot, store):
        store.upsert_detection_pattern(
            "p1", "subject", "booking_confirmation", hit_count=10, false_positive_count=2
        )

        signal = evaluator.pattern_match(
            make_input(pattern_id="p1", pattern_confidence=90), snapshot
        )

        assert signal.details["reliability"] == 80
        assert signal.score == 85

    def test_reliability_clamped(self, evaluator, snapshot, store):
        store.upsert_detection_pattern(
            "p1", "subject", "booking_confirmation", hit_count=2, false_positive_count=5
        )

        signal = evaluator.pattern_match(
            make_input(pattern_id="p1", pattern_confidence=90), snapshot
        )

        assert signal.details["reliability"] == 0
        assert signal.score == 45

    def test_lookup_failure(self, evaluator, snapshot, store):
        with mock.patch.object(
            store, "get_detection_pattern", side_effect=sqlite3.OperationalError("locked")
        ):
            signal = evaluator.pattern_match(make_input(pattern_id="p1"), snapshot)

        assert signal.score == 50


class TestSenderTrust:
    """Tests for the sender-trust signal."""

    def test_invalid_address(self, evaluator, snapshot):
        signal = evaluator.sender_trust(make_input(sender_email="no-address"), snapshot)

        assert signal.score == 30
        assert signal.details["reason"] == "Invalid sender email format"

    def test_unknown_domain(self, evaluator, snapshot):
        signal = evaluator.sender_trust(make_input(), snapshot)

        assert signal.score == 50
        assert signal.details["is_new_sender"] is True
        assert signal.details["domain"] == "maersk.com"

    def test_known_domain(self, evaluator, snapshot, store):
        store.upsert_sender_trust("maersk.com", total_emails=20, correct_extractions=14)

        signal = evaluator.sender_trust(
            make_input(sender_email="Docs <Docs@Maersk.COM>"), snapshot
        )

        assert signal.score == 70
        assert signal.details["is_new_sender"] is False

    def test_low_volume_is_new(self, evaluator, snapshot, store):
        store.upsert_sender_trust("maersk.com", total_emails=9, correct_extractions=9)

        signal = evaluator.sender_trust(make_input(), snapshot)

        assert signal.score == 100
        assert signal.details["is_new_sender"] is True

    def test_lookup_failure(self, evaluator, snapshot, store):
        with mock.patch.object(
            store, "get_sender_trust", side_effect=sqlite3.OperationalError("locked")
        ):
            signal = evaluator.sender_trust(make_input(), snapshot)

        assert signal.score == 50


class TestFlowValidation:
    """Tests for the flow-validation signal."""

    def test_no_context(self, evaluator, snapshot):
        signal = evaluator.flow_validation(make_input(), snapshot)

        assert signal.score == 75
        assert "No shipment context" in signal.details["reason"]

    @pytest.mark.parametrize(
        "stage,document_type,expected",
        [
            ("BOOKED", "booking_confirmation", 100),
            ("BOOKED", "draft_bl", 80),
            ("DEPARTED", "booking_confirmation", 45),
            ("BOOKED", "arrival_notice", 10),
            ("ARRIVED", "booking_confirmation", 70),
        ],
    )
    def test_rule_scores(self, evaluator, snapshot, stage, document_type, expected):
        signal = evaluator.flow_validation(
            make_input(document_type=document_type, shipment_stage=stage), snapshot
        )
        assert signal.score == expected

    def test_stage_from_shipment(self, evaluator, snapshot, store):
        store.upsert_shipment_stage("SHP-1", "DEPARTED")

        signal = evaluator.flow_validation(make_input(shipment_id="SHP-1"), snapshot)

        assert signal.score == 45
        assert signal.details["reason"] == "booking_confirmation is unexpected at stage DEPARTED"

    def test_lookup_failure(self, evaluator, snapshot, store):
        with mock.patch.object(
            store, "get_shipment_stage", side_effect=sqlite3.OperationalError("locked")
        ):
            signal = evaluator.flow_validation(make_input(shipment_id="SHP-1"), snapshot)

        assert signal.score == 75


class TestFieldConsistency:
    """Tests for the field-consistency signal."""

    def test_consistent_fields(self, evaluator, snapshot):
        signal = evaluator.field_consistency(make_input(), snapshot)

        assert signal.score == 100
        assert signal.details["issues"] == []

    def test_etd_after_eta(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, etd="2026-02-01", eta="2026-01-25")

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 85

    def test_etd_after_eta_mixed_date_and_timestamp(self, evaluator, snapshot):
        """A UTC timestamp ETD is compared against a date-only ETA."""
        fields = dict(COMPLETE_BOOKING, etd="2026-02-10T08:00:00Z", eta="2026-02-01")

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.details["issues_found"] == 1
        assert signal.details["issues"][0].startswith("ETD is after ETA")
        assert signal.score == 85

    def test_date_only_etd_before_timestamp_eta(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, etd="2026-01-05", eta="2026-01-25T06:00:00+08:00")

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.details["issues_found"] == 0
        assert signal.score == 100

    def test_container_count_mismatch(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, container_count="3", container_numbers=["MSKU1234567"])

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 85
        assert "Container count (3)" in signal.details["issues"][0]

    def test_empty_container_list_not_checked(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, container_count=3, container_numbers=[])

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 100

    def test_unparseable_dates_skipped(self, evaluator, snapshot):
        fields = dict(COMPLETE_BOOKING, etd="next week", eta="2026-01-25")

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.score == 100

    def test_score_floor(self, evaluator, snapshot):
        """Five issues would give 25, the floor keeps it at 40."""
        fields = {
            "etd": "2026-02-01",
            "eta": "2026-01-01",
            "container_count": 2,
            "container_numbers": ["A"],
            "booking_number": "BK1",
            "mbl_number": "M" * 31,
            "hbl_number": "H",
        }

        signal = evaluator.field_consistency(make_input(extracted_fields=fields), snapshot)

        assert signal.details["issues_found"] == 5
        assert signal.score == 40
