"""Integration tests for API endpoints"""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from placement_lifecycle.api.dependencies import get_ledger_client
from placement_lifecycle.domain.models import ApplicationStatus, DocumentStatus
from placement_lifecycle.infrastructure.clients.ledger import LedgerClient
from placement_lifecycle.infrastructure.database.models import Candidate, DocumentChecklistItem, LedgerAdjustment


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "placement_cancellation_total" in response.text


def test_request_id_header(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_company_header_required(client: TestClient, make_application):
    application = make_application()

    response = client.get(f"/v1/applications/{application.id}/cancellation-options")

    assert response.status_code == 422


def test_cancellation_options_pending_mol(client: TestClient, headers, make_application, make_setting):
    """Test GET /v1/applications/{id}/cancellation-options for a fresh application"""
    make_setting("pre_arrival")
    application = make_application()

    response = client.get(f"/v1/applications/{application.id}/cancellation-options", headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["can_cancel"] is True
    assert data["available_types"] == ["pre_arrival", "candidate_cancellation"]
    assert Decimal(data["refund_estimate"]["final_refund"]) == Decimal("400")
    assert "No active refund policy configured for candidate_cancellation" in data["warnings"]


def test_cancellation_options_other_company(client: TestClient, make_application):
    application = make_application()

    response = client.get(
        f"/v1/applications/{application.id}/cancellation-options",
        headers={"X-Company-ID": "company-2", "X-User-ID": "u"},
    )

    assert response.status_code == 404
    assert "error" in response.json()


def test_calculate_refund(client: TestClient, headers, make_application, make_setting):
    """Test POST /v1/applications/calculate-refund with an override fee"""
    make_setting("pre_arrival")
    application = make_application()

    response = client.post(
        "/v1/applications/calculate-refund",
        headers=headers,
        json={"application_id": str(application.id), "cancellation_type": "pre_arrival", "override_fee": "0"},
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["total_paid"]) == Decimal("1200")
    assert Decimal(data["final_refund"]) == Decimal("500")
    assert len(data["refund_breakdown"]) == 2


def test_calculate_refund_unavailable_type(client: TestClient, headers, make_application):
    application = make_application()

    response = client.post(
        "/v1/applications/calculate-refund",
        headers=headers,
        json={"application_id": str(application.id), "cancellation_type": "post_arrival_within_3_months"},
    )

    assert response.status_code == 409


def test_cancel_application(client: TestClient, db, headers, make_application, make_setting):
    """Test POST /v1/applications/{id}/cancel commits status, refund and audit event"""
    make_setting("pre_arrival")
    application = make_application(status=ApplicationStatus.VISA_PROCESSING)

    response = client.post(
        f"/v1/applications/{application.id}/cancel",
        headers=headers,
        json={"cancellation_type": "pre_arrival", "reason": "Client changed plans"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["new_status"] == "CANCELLED_PRE_ARRIVAL"
    assert data["candidate_status"] == "AVAILABLE_ABROAD"
    assert Decimal(data["refund"]["final_refund"]) == Decimal("400")
    assert data["new_application_id"] is None

    adjustments = db.query(LedgerAdjustment).filter(LedgerAdjustment.application_id == application.id).all()
    assert len(adjustments) == 1
    assert adjustments[0].kind == "refund"
    assert Decimal(adjustments[0].amount) == Decimal("400")

    history = client.get(f"/v1/applications/{application.id}/lifecycle-history", headers=headers).json()
    assert len(history["entries"]) == 1
    entry = history["entries"][0]
    assert entry["id"] == data["lifecycle_event_id"]
    assert entry["action"] == "cancellation"
    assert entry["from_status"] == "VISA_PROCESSING"
    assert entry["to_status"] == "CANCELLED_PRE_ARRIVAL"
    assert entry["performed_by"] == headers["X-User-ID"]
    assert entry["financial_impact"]["amount"] == "400.00"
    assert entry["financial_impact"]["type"] == "refund"


def test_cancel_twice_is_rejected(client: TestClient, headers, make_application):
    """Test a cancelled application can't be cancelled again"""
    application = make_application()
    url = f"/v1/applications/{application.id}/cancel"

    first = client.post(url, headers=headers, json={"cancellation_type": "pre_arrival"})
    second = client.post(url, headers=headers, json={"cancellation_type": "candidate_cancellation"})

    assert first.status_code == 200
    assert Decimal(first.json()["refund"]["final_refund"]) == Decimal("0")
    assert second.status_code == 409
    assert "user_friendly" in second.json()


def test_cancel_with_custom_refund(client: TestClient, headers, make_application, make_setting):
    make_setting("pre_arrival")
    application = make_application()

    response = client.post(
        f"/v1/applications/{application.id}/cancel",
        headers=headers,
        json={"cancellation_type": "pre_arrival", "custom_refund_amount": "123.45"},
    )

    assert response.status_code == 200
    refund = response.json()["refund"]
    assert refund["is_override"] is True
    assert Decimal(refund["final_refund"]) == Decimal("123.45")


@patch("placement_lifecycle.infrastructure.clients.ledger.LedgerClient.send_adjustment_event", new_callable=AsyncMock)
def test_cancel_sends_ledger_webhook(mock_send: AsyncMock, client: TestClient, headers, make_application, make_setting):
    """Test a committed refund is pushed to the ledger when a webhook is configured"""
    client.app.dependency_overrides[get_ledger_client] = lambda: LedgerClient(webhook_url="http://ledger.test/hook")
    make_setting("pre_arrival")
    application = make_application()

    response = client.post(
        f"/v1/applications/{application.id}/cancel",
        headers=headers,
        json={"cancellation_type": "pre_arrival"},
    )

    assert response.status_code == 200
    mock_send.assert_awaited_once()
    payload = mock_send.await_args.args[0]
    assert payload["event"] == "PLACEMENT_REFUND"
    assert payload["application_id"] == str(application.id)
    assert payload["amount"] == "400.00"


def test_deport_without_template_fails_before_write(client: TestClient, db, headers, make_application):
    """Test deportation requires its fee template and leaves the application untouched"""
    application = make_application(
        status=ApplicationStatus.ACTIVE_EMPLOYMENT,
        exact_arrival_date=date.today() - timedelta(days=20),
    )

    response = client.post(
        f"/v1/applications/{application.id}/cancel",
        headers=headers,
        json={"cancellation_type": "post_arrival_within_3_months", "next_action": "deport"},
    )

    assert response.status_code == 422
    db.expire_all()
    assert application.status == "ACTIVE_EMPLOYMENT"


def test_deport_uses_deportation_template(client: TestClient, db, headers, make_application, make_setting):
    make_setting("post_arrival_within_3_months")
    make_setting("deportation", penalty_fee=Decimal("300"), refund_percentage=Decimal("100"))
    application = make_application(
        status=ApplicationStatus.ACTIVE_EMPLOYMENT,
        exact_arrival_date=date.today() - timedelta(days=20),
    )

    response = client.post(
        f"/v1/applications/{application.id}/cancel",
        headers=headers,
        json={"cancellation_type": "post_arrival_within_3_months", "next_action": "deport"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["candidate_status"] == "DEPORTED"
    assert data["refund"]["policy_key"] == "deportation"
    assert data["refund"]["cancellation_type"] == "post_arrival_within_3_months"
    assert Decimal(data["refund"]["final_refund"]) == Decimal("700")


def test_status_advance(client: TestClient, db, headers, make_application):
    """Test PATCH /v1/applications/{id}/status moves one step and audits it"""
    application = make_application()

    response = client.patch(
        f"/v1/applications/{application.id}/status",
        headers=headers,
        json={"status": "MOL_AUTH_RECEIVED", "notes": "Authorization stamped"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["from_status"] == "PENDING_MOL"
    assert data["to_status"] == "MOL_AUTH_RECEIVED"
    assert data["valid_next_states"] == ["VISA_PROCESSING"]

    summary = client.get(f"/v1/applications/{application.id}/lifecycle-summary", headers=headers).json()
    assert summary["total_entries"] == 1
    assert summary["status_changes"] == 1
    assert summary["recent_activity"][0]["notes"] == "Authorization stamped"


def test_status_skip_rejected(client: TestClient, headers, make_application):
    application = make_application()

    response = client.patch(
        f"/v1/applications/{application.id}/status",
        headers=headers,
        json={"status": "VISA_RECEIVED"},
    )

    assert response.status_code == 400
    assert response.json()["valid_next_states"] == ["MOL_AUTH_RECEIVED"]


def test_worker_arrival_records_date_and_candidate(client: TestClient, db, headers, make_application):
    application = make_application(status=ApplicationStatus.VISA_RECEIVED)

    missing = client.patch(
        f"/v1/applications/{application.id}/status", headers=headers, json={"status": "WORKER_ARRIVED"}
    )
    assert missing.status_code == 400
    assert missing.json()["field"] == "exact_arrival_date"

    response = client.patch(
        f"/v1/applications/{application.id}/status",
        headers=headers,
        json={"status": "WORKER_ARRIVED", "exact_arrival_date": "2024-03-01"},
    )

    assert response.status_code == 200
    db.expire_all()
    assert application.exact_arrival_date == date(2024, 3, 1)
    candidate = db.query(Candidate).filter(Candidate.id == application.candidate_id).one()
    assert candidate.status == "IN_PROCESS"


def test_documents_block_post_arrival_move(client: TestClient, db, headers, make_application):
    """Test outstanding checklist items surface with scroll_to_documents"""
    application = make_application(status=ApplicationStatus.VISA_RECEIVED)
    db.add(
        DocumentChecklistItem(
            application_id=application.id,
            document_name="Entry Visa",
            stage=ApplicationStatus.VISA_RECEIVED.value,
            status=DocumentStatus.PENDING.value,
        )
    )
    db.commit()

    response = client.patch(
        f"/v1/applications/{application.id}/status",
        headers=headers,
        json={"status": "WORKER_ARRIVED", "exact_arrival_date": "2024-03-01"},
    )

    assert response.status_code == 400
    data = response.json()
    assert data["scroll_to_documents"] is True
    assert data["missing_documents"] == ["Entry Visa"]
    db.expire_all()
    assert application.status == "VISA_RECEIVED"


def test_valid_next_states(client: TestClient, headers, make_application):
    application = make_application(status=ApplicationStatus.ACTIVE_EMPLOYMENT)

    response = client.get(f"/v1/applications/{application.id}/valid-next-states", headers=headers)

    assert response.status_code == 200
    assert response.json()["valid_next_states"] == ["RENEWAL_PENDING", "CONTRACT_ENDED"]


def test_unknown_application_is_404(client: TestClient, headers):
    response = client.get(f"/v1/applications/{uuid.uuid4()}/lifecycle-history", headers=headers)
    assert response.status_code == 404


def test_status_advance_keeps_recorded_arrival_date(client: TestClient, db, headers, make_application):
    """Test a later move stores only its own date and leaves the arrival date alone"""
    arrival = date.today() - timedelta(days=200)
    application = make_application(status=ApplicationStatus.WORKER_ARRIVED, exact_arrival_date=arrival)

    response = client.patch(
        f"/v1/applications/{application.id}/status",
        headers=headers,
        json={
            "status": "LABOUR_PERMIT_PROCESSING",
            "labor_permit_date": "2024-05-01",
            "exact_arrival_date": date.today().isoformat(),
        },
    )

    assert response.status_code == 200
    db.expire_all()
    assert application.exact_arrival_date == arrival
    assert application.labor_permit_date == date(2024, 5, 1)

    options = client.get(f"/v1/applications/{application.id}/cancellation-options", headers=headers).json()
    assert "post_arrival_after_3_months" in options["available_types"]
    assert "post_arrival_within_3_months" not in options["available_types"]
