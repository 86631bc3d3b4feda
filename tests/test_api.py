"""
API Tests
Finance request, approval, notification and SLA cron endpoints
"""

import pytest

from src.config.settings import settings


@pytest.fixture
def payload(entities):
    def build(**overrides):
        data = {
            "entity_id": entities["HQ"].id,
            "purpose": "Office lease deposit",
            "vendor_name": "Skyline Estates",
            "vendor_bank_account": "009988776655",
            "vendor_bank_ifsc": "ICIC0004321",
            "invoice_number": "LEASE-07",
            "payment_type": "CRITICAL",
            "amount": 250000.0,
            "save_as_draft": False,
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def submitted(client, login, payload):
    response = client.post("/api/finance-requests", json=payload(), headers=login("employee"))
    assert response.status_code == 201
    return response.json()["finance_request"]


def decide(client, headers, reference, level, decision, comments=None, expected_version=None):
    body = {"level": level, "decision": decision, "comments": comments, "expected_version": expected_version}
    return client.post(f"/api/approvals/{reference}/decide", json=body, headers=headers)


class TestFinanceRequestEndpoints:
    """Create, read and edit"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_and_submit(self, submitted):
        assert submitted["reference_number"] == "FIN-000001"
        assert submitted["status"] == "PENDING"
        assert submitted["status_label"] == "PENDING_FINANCE_VETTING"
        assert submitted["total_amount_inr"] == 250000.0

    def test_create_draft_then_submit(self, client, login, payload):
        headers = login("employee")
        created = client.post("/api/finance-requests", json=payload(save_as_draft=True), headers=headers)
        reference = created.json()["finance_request"]["reference_number"]
        assert created.json()["finance_request"]["status"] == "DRAFT"

        response = client.post(f"/api/finance-requests/{reference}/submit", headers=headers)

        assert response.status_code == 200
        assert response.json()["finance_request"]["status_label"] == "PENDING_FINANCE_VETTING"

    def test_invalid_ifsc_rejected(self, client, login, payload):
        response = client.post(
            "/api/finance-requests", json=payload(vendor_bank_ifsc="not-an-ifsc"), headers=login("employee")
        )
        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_unknown_entity(self, client, login, payload):
        response = client.post("/api/finance-requests", json=payload(entity_id=999), headers=login("employee"))
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_approver_cannot_create(self, client, login, payload):
        response = client.post("/api/finance-requests", json=payload(), headers=login("director"))
        assert response.status_code == 403

    def test_unknown_reference(self, client, login):
        response = client.get("/api/finance-requests/FIN-999999", headers=login("employee"))
        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "error": "NotFound",
            "message": "Finance request FIN-999999 not found",
        }

    def test_other_employee_forbidden(self, client, login, submitted):
        reference = submitted["reference_number"]
        response = client.get(f"/api/finance-requests/{reference}", headers=login("other_employee"))
        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden"

    def test_list_scoped_to_requester(self, client, login, submitted):
        own = client.get("/api/finance-requests", headers=login("employee")).json()
        other = client.get("/api/finance-requests", headers=login("other_employee")).json()
        reviewer = client.get("/api/finance-requests", headers=login("controller")).json()

        assert own["count"] == 1
        assert other["count"] == 0
        assert reviewer["count"] == 1

    def test_finance_edits_taxes_at_vetting(self, client, login, submitted):
        reference = submitted["reference_number"]
        response = client.patch(
            f"/api/finance-requests/{reference}",
            json={"is_tds_applicable": True, "tds_percentage": 10.0},
            headers=login("finance"),
        )

        assert response.status_code == 200
        assert response.json()["finance_request"]["net_payable_amount"] == 225000.0

    def test_clearing_purpose_is_a_validation_error(self, client, login, payload):
        headers = login("employee")
        created = client.post("/api/finance-requests", json=payload(save_as_draft=True), headers=headers)
        reference = created.json()["finance_request"]["reference_number"]

        response = client.patch(f"/api/finance-requests/{reference}", json={"purpose": None}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"


class TestApprovalEndpoints:
    """Decisions and error mapping"""

    def test_pending_for_finance(self, client, login, submitted):
        response = client.get("/api/approvals/pending", headers=login("finance"))
        references = [r["reference_number"] for r in response.json()["finance_requests"]]
        assert references == [submitted["reference_number"]]

    def test_approve_moves_to_next_level(self, client, login, submitted):
        response = decide(
            client, login("finance"), submitted["reference_number"], "FINANCE_VETTING", "APPROVED",
            expected_version=submitted["version"],
        )
        assert response.status_code == 200
        assert response.json()["finance_request"]["status_label"] == "PENDING_FINANCE_CONTROLLER"

    def test_send_back_requires_comments(self, client, login, submitted):
        response = decide(client, login("finance"), submitted["reference_number"], "FINANCE_VETTING", "SENT_BACK")
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    def test_wrong_role_unauthorized(self, client, login, submitted):
        response = decide(client, login("director"), submitted["reference_number"], "FINANCE_VETTING", "APPROVED")
        assert response.status_code == 403
        assert response.json()["error"] == "Unauthorized"

    def test_wrong_level_is_illegal(self, client, login, submitted):
        response = decide(
            client, login("controller"), submitted["reference_number"], "FINANCE_CONTROLLER", "APPROVED"
        )
        assert response.status_code == 409
        assert response.json()["error"] == "IllegalTransition"
        assert response.json()["details"]["status"] == "PENDING_FINANCE_VETTING"

    def test_stale_version_conflict(self, client, login, submitted):
        response = decide(
            client, login("finance"), submitted["reference_number"], "FINANCE_VETTING", "APPROVED",
            expected_version=submitted["version"] - 1,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "Conflict"

    def test_submitted_is_not_a_decision(self, client, login, submitted):
        response = decide(client, login("finance"), submitted["reference_number"], "FINANCE_VETTING", "SUBMITTED")
        assert response.status_code == 400

    def test_full_ladder_and_disbursement(self, client, login, submitted):
        reference = submitted["reference_number"]
        for username, level in [
            ("finance", "FINANCE_VETTING"),
            ("controller", "FINANCE_CONTROLLER"),
            ("director", "DIRECTOR"),
            ("md", "MD"),
        ]:
            response = decide(client, login(username), reference, level, "APPROVED")
            assert response.status_code == 200

        assert response.json()["finance_request"]["status"] == "APPROVED"

        finance = login("finance")
        waiting = client.get("/api/approvals/pending", headers=finance).json()["awaiting_disbursement"]
        assert [r["reference_number"] for r in waiting] == [reference]

        missing = client.post(
            f"/api/finance-requests/{reference}/disburse", json={"payment_mode": "RTGS"}, headers=finance
        )
        assert missing.status_code == 400
        assert missing.json()["details"]["missing_fields"] == ["payment_reference_number", "payment_date"]

        response = client.post(
            f"/api/finance-requests/{reference}/disburse",
            json={"payment_reference_number": "UTR123", "payment_mode": "RTGS", "payment_date": "2024-06-01"},
            headers=finance,
        )
        assert response.status_code == 200
        disbursed = response.json()["finance_request"]
        assert disbursed["status"] == "DISBURSED"
        assert disbursed["disbursed_amount"] == 250000.0

    def test_timeline(self, client, login, submitted):
        reference = submitted["reference_number"]
        decide(client, login("finance"), reference, "FINANCE_VETTING", "SENT_BACK", comments="Attach lease deed")

        response = client.get(f"/api/approvals/{reference}/timeline", headers=login("employee"))

        assert response.status_code == 200
        timeline = response.json()["timeline"]
        assert timeline["request"]["status"] == "SENT_BACK"
        assert [a["decision"] for a in timeline["actions"]] == ["SUBMITTED", "SENT_BACK"]
        assert timeline["steps"][0]["comments"] == "Attach lease deed"

    def test_resubmit_with_changes(self, client, login, submitted):
        reference = submitted["reference_number"]
        decide(client, login("finance"), reference, "FINANCE_VETTING", "SENT_BACK", comments="Wrong amount")

        response = client.post(
            f"/api/finance-requests/{reference}/resubmit",
            json={"changes": {"amount": 240000.0}, "comments": "Corrected"},
            headers=login("employee"),
        )

        assert response.status_code == 200
        resubmitted = response.json()["finance_request"]
        assert resubmitted["status_label"] == "PENDING_FINANCE_VETTING"
        assert resubmitted["resubmission_count"] == 1
        assert resubmitted["total_amount_inr"] == 240000.0


class TestNotificationEndpoints:
    """In-app notifications written by the workflow"""

    def test_requester_and_approver_notified(self, client, login, submitted):
        mine = client.get("/api/notifications/my-notifications", headers=login("employee")).json()
        finance = client.get("/api/notifications/my-notifications", headers=login("finance")).json()

        assert [n["type"] for n in mine["notifications"]] == ["SUBMITTED"]
        assert [n["type"] for n in finance["notifications"]] == ["PENDING_APPROVAL"]
        assert finance["notifications"][0]["reference_number"] == submitted["reference_number"]

    def test_mark_read(self, client, login, submitted):
        headers = login("employee")
        notification = client.get("/api/notifications/my-notifications", headers=headers).json()["notifications"][0]

        response = client.patch(f"/api/notifications/{notification['id']}/read", headers=headers)

        assert response.status_code == 200
        after = client.get("/api/notifications/my-notifications", headers=headers).json()
        assert after["unread_count"] == 0


class TestSLACronEndpoints:
    """Cron-triggered sweep"""

    def test_sweep_open_without_secret(self, client, submitted):
        response = client.post("/api/cron/check-sla")
        assert response.status_code == 200
        assert response.json()["checked"] == 1
        assert response.json()["breaches_logged"] == 0

    def test_secret_enforced(self, client, monkeypatch, submitted):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

        assert client.post("/api/cron/check-sla").status_code == 401
        assert client.get("/api/cron/check-sla", headers={"Authorization": "Bearer wrong"}).status_code == 401

        response = client.get("/api/cron/check-sla", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert response.json()["pending_steps"] == 1
        assert response.json()["overdue_steps"] == 0
