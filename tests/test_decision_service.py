"""Tests for the decision service."""

from datetime import datetime, timezone

import pytest

from freight_decisions.config import Config
from freight_decisions.schemas import Recommendation, ShipmentContext
from freight_decisions.services import ClassifiedDocument, DecisionService

NOW = datetime(2026, 1, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(seeded_store, cache):
    svc = DecisionService(Config(state_db_path=seeded_store.db_path), seeded_store, cache)
    yield svc
    svc.close()


def arrival_notice(**overrides) -> ClassifiedDocument:
    values = {
        "document_type": "arrival_notice",
        "from_party": "ocean_carrier",
        "sender_email": "noreply@maersk.com",
        "email_date": datetime(2026, 1, 10),
        "subject": "Arrival notice",
        "body": "Urgent pickup needed. Delivery arranged on request.",
        "shipment_id": "SHP-1",
        "document_id": "email-1",
    }
    values.update(overrides)
    return ClassifiedDocument(**values)


class TestProcessDocument:
    """Tests for DecisionService.process_document."""

    def test_scores_and_recommends(self, service):
        decision = service.process_document(arrival_notice(), now=NOW)

        assert decision.action.priority == 80
        assert decision.confidence.audit_id is not None
        assert decision.auto_resolve.resolved is False
        assert decision.created_action_id is None

    def test_create_action_persists(self, service, seeded_store):
        decision = service.process_document(arrival_notice(), create_action=True, now=NOW)

        open_actions = seeded_store.list_open_actions("SHP-1")
        assert [a.id for a in open_actions] == [decision.created_action_id]
        assert open_actions[0].description.startswith("Forward arrival notice")
        assert open_actions[0].auto_resolve_on == ("container_release",)
        assert open_actions[0].auto_resolve_keywords == ("delivery arranged",)

    def test_new_action_not_resolved_by_its_own_document(self, service, seeded_store):
        """The body contains a resolve keyword but auto-resolve runs first."""
        service.process_document(arrival_notice(), create_action=True, now=NOW)

        assert len(seeded_store.list_open_actions("SHP-1")) == 1

    def test_later_document_resolves_action(self, service, seeded_store):
        created = service.process_document(arrival_notice(), create_action=True, now=NOW)

        release = arrival_notice(
            document_type="container_release",
            subject="Container released",
            body="",
            document_id="email-2",
        )
        decision = service.process_document(release, create_action=True, now=NOW)

        assert decision.auto_resolve.resolved_action_ids == [created.created_action_id]
        assert seeded_store.list_open_actions("SHP-1")[0].document_type == "container_release"

    def test_no_action_for_informational(self, service, seeded_store):
        decision = service.process_document(
            arrival_notice(document_type="tracking_update"), create_action=True, now=NOW
        )

        assert decision.action.has_action is False
        assert decision.created_action_id is None
        assert seeded_store.list_open_actions("SHP-1") == []

    def test_without_shipment(self, service):
        decision = service.process_document(
            arrival_notice(shipment_id=None), create_action=True, now=NOW
        )

        assert decision.auto_resolve is None
        assert decision.created_action_id is None

    def test_context_stage_used_for_flow(self, service):
        document = arrival_notice(shipment_context=ShipmentContext(stage="BOOKED"))

        decision = service.process_document(document, now=NOW)

        assert decision.confidence.signals["flow_validation"].score == 10

    def test_to_dict(self, service):
        data = service.process_document(arrival_notice(), now=NOW).to_dict()

        assert data["action"]["priority_label"] == "HIGH"
        assert data["action"]["deadline"] == "2026-01-12T00:00:00"
        assert data["auto_resolve"] == {"resolved": False, "resolved_action_ids": []}
        assert data["confidence"]["recommendation"] in {r.value for r in Recommendation}


class TestClassifiedDocument:
    """Tests for parsing classifier payloads."""

    def test_from_dict(self):
        document = ClassifiedDocument.from_dict(
            {
                "document_type": "draft_bl",
                "from_party": "ocean_carrier",
                "sender_email": "docs@maersk.com",
                "email_date": "2026-01-10T08:00:00Z",
                "extracted_fields": {"booking_number": "BK12345"},
                "shipment_id": "SHP-1",
                "shipment_context": {"stage": "BOOKED", "si_cutoff": "2026-01-20"},
            }
        )

        assert document.email_date == datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc)
        assert document.shipment_context.si_cutoff == datetime(2026, 1, 20)
        assert document.to_confidence_input().shipment_stage == "BOOKED"

    def test_email_date_required(self):
        with pytest.raises(ValueError):
            ClassifiedDocument.from_dict(
                {"document_type": "draft_bl", "from_party": "ocean_carrier"}
            )
