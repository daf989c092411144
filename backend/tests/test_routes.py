"""
HTTP API tests.

Verifies:
- Requests without an upstream identity return 401
- Decorator permission checks return 403 with the required permission
- Workflow denials map to 403 (permission) and 409 (illegal / no-op)
- End-to-end flows for requests, tasks, requisitions, invoices, reports
"""

import pytest

from conftest import caller_headers, make_caller
from certflow.models import User
from certflow.services import notification_service


def _request_body(**overrides):
    data = {
        "task_title": "Search relevance suite",
        "associated_team": "Discovery",
        "associated_project": "Storefront",
        "description": "Regression suite for search ranking",
    }
    data.update(overrides)
    return data


def _file_request(client, caller):
    resp = client.post("/api/requests", json=_request_body(), headers=caller_headers(caller))
    assert resp.status_code == 201
    return resp.get_json()["request"]


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without X-User-Id."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/requests"),
            ("POST", "/api/requests"),
            ("POST", "/api/requests/1/transition"),
            ("GET", "/api/requests/1/comments"),
            ("POST", "/api/requests/1/comments"),
            ("GET", "/api/tasks"),
            ("GET", "/api/requisitions"),
            ("GET", "/api/invoices"),
            ("POST", "/api/transactions"),
            ("GET", "/api/reports/balance"),
            ("GET", "/api/reports/leaderboard"),
            ("GET", "/api/admin/roles"),
            ("GET", "/api/admin/permissions"),
            ("GET", "/api/notifications"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"


# =============================================================================
# CERTIFICATE REQUESTS
# =============================================================================


class TestRequestRoutes:

    def test_create_and_approve(self, client, requester, qa_tester):
        created = _file_request(client, requester)
        assert created["status"] == "pending"
        assert created["requester_id"] == requester.id

        resp = client.post(
            f"/api/requests/{created['id']}/transition",
            json={"status": "approved", "reason": "All green"},
            headers=caller_headers(qa_tester),
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["request"]["status"] == "approved"
        assert body["request"]["certificate_id"].startswith("CERT-")
        assert body["history_entry"]["previous_status"] == "pending"
        assert body["history_entry"]["changed_by_id"] == qa_tester.id

    def test_requester_cannot_approve(self, client, requester):
        created = _file_request(client, requester)
        resp = client.post(
            f"/api/requests/{created['id']}/transition",
            json={"status": "approved"},
            headers=caller_headers(requester),
        )
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "permission_denied"

    def test_repeat_transition_conflicts(self, client, requester, qa_tester):
        created = _file_request(client, requester)
        path = f"/api/requests/{created['id']}/transition"
        client.post(path, json={"status": "approved"}, headers=caller_headers(qa_tester))

        resp = client.post(path, json={"status": "approved"}, headers=caller_headers(qa_tester))
        assert resp.status_code == 409
        assert resp.get_json() == {
            "error": "Request is already in this status",
            "reason": "already_in_state",
        }

    @pytest.mark.parametrize("body", [{}, {"status": "archived"}])
    def test_bad_status(self, client, requester, qa_tester, body):
        created = _file_request(client, requester)
        resp = client.post(
            f"/api/requests/{created['id']}/transition", json=body, headers=caller_headers(qa_tester),
        )
        assert resp.status_code == 400

    def test_missing_request(self, client, qa_tester):
        resp = client.post(
            "/api/requests/999/transition", json={"status": "approved"}, headers=caller_headers(qa_tester),
        )
        assert resp.status_code == 404

    def test_reject_and_resubmit(self, client, requester, other_requester, qa_tester):
        created = _file_request(client, requester)
        transition = f"/api/requests/{created['id']}/transition"
        resubmit = f"/api/requests/{created['id']}/resubmit"

        resp = client.post(transition, json={"status": "rejected"}, headers=caller_headers(qa_tester))
        assert resp.status_code == 400

        resp = client.post(
            transition, json={"status": "rejected", "reason": "Flaky"}, headers=caller_headers(qa_tester),
        )
        assert resp.status_code == 200
        assert resp.get_json()["request"]["rejection_reason"] == "Flaky"

        # reviewer lacks requests:create
        resp = client.post(resubmit, json={}, headers=caller_headers(qa_tester))
        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "requests:create"

        resp = client.post(resubmit, json={}, headers=caller_headers(other_requester))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "permission_denied"

        resp = client.post(
            resubmit, json={"description": "Stabilised"}, headers=caller_headers(requester),
        )
        assert resp.status_code == 200
        body = resp.get_json()["request"]
        assert body["status"] == "pending"
        assert body["description"] == "Stabilised"
        assert body["rejection_reason"] is None

    def test_resubmit_approved_is_illegal(self, client, requester, qa_tester):
        created = _file_request(client, requester)
        client.post(
            f"/api/requests/{created['id']}/transition",
            json={"status": "approved"},
            headers=caller_headers(qa_tester),
        )
        resp = client.post(f"/api/requests/{created['id']}/resubmit", json={}, headers=caller_headers(requester))
        assert resp.status_code == 409
        assert resp.get_json()["reason"] == "illegal_transition"

    def test_reject_without_permission_is_403_even_without_reason(self, client, requester):
        created = _file_request(client, requester)
        resp = client.post(
            f"/api/requests/{created['id']}/transition",
            json={"status": "rejected"},
            headers=caller_headers(requester),
        )
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "permission_denied"

    def test_repeat_reject_without_reason_is_409(self, client, requester, qa_tester):
        created = _file_request(client, requester)
        path = f"/api/requests/{created['id']}/transition"
        client.post(path, json={"status": "rejected", "reason": "Flaky"}, headers=caller_headers(qa_tester))

        resp = client.post(path, json={"status": "rejected"}, headers=caller_headers(qa_tester))
        assert resp.status_code == 409
        assert resp.get_json()["reason"] == "already_in_state"

    def test_assign_unknown_tester_without_permission_is_403(self, client, requester):
        created = _file_request(client, requester)
        resp = client.post(
            f"/api/requests/{created['id']}/transition",
            json={"status": "assigned", "qa_tester_id": "ghost"},
            headers=caller_headers(requester),
        )
        assert resp.status_code == 403

    def test_resubmit_by_other_user_with_bad_fields_is_403(self, client, requester, other_requester, qa_tester):
        created = _file_request(client, requester)
        client.post(
            f"/api/requests/{created['id']}/transition",
            json={"status": "rejected", "reason": "Flaky"},
            headers=caller_headers(qa_tester),
        )
        resp = client.post(
            f"/api/requests/{created['id']}/resubmit",
            json={"task_title": ""},
            headers=caller_headers(other_requester),
        )
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "permission_denied"

    def test_visibility(self, client, requester, other_requester, qa_tester):
        created = _file_request(client, requester)

        resp = client.get(f"/api/requests/{created['id']}", headers=caller_headers(other_requester))
        assert resp.status_code == 404

        resp = client.get(f"/api/requests/{created['id']}", headers=caller_headers(requester))
        assert resp.status_code == 200
        assert len(resp.get_json()["history"]) == 1

        resp = client.get("/api/requests", headers=caller_headers(other_requester))
        assert resp.get_json()["requests"] == []

        resp = client.get("/api/requests", headers=caller_headers(qa_tester))
        assert len(resp.get_json()["requests"]) == 1

    def test_comments(self, client, requester, other_requester, qa_tester, manager):
        created = _file_request(client, requester)
        path = f"/api/requests/{created['id']}/comments"

        resp = client.post(path, json={"text": "Which browsers?"}, headers=caller_headers(qa_tester))
        assert resp.status_code == 201
        assert resp.get_json()["comment"]["author_id"] == qa_tester.id

        resp = client.post(path, json={"text": "   "}, headers=caller_headers(requester))
        assert resp.status_code == 400

        # manager can read every request but holds no requests:add_comment
        resp = client.post(path, json={"text": "Hi"}, headers=caller_headers(manager))
        assert resp.status_code == 403

        resp = client.post(path, json={"text": "Hi"}, headers=caller_headers(other_requester))
        assert resp.status_code == 404

        resp = client.get(path, headers=caller_headers(other_requester))
        assert resp.status_code == 404

        resp = client.get(path, headers=caller_headers(requester))
        assert resp.status_code == 200
        assert [c["text"] for c in resp.get_json()["comments"]] == ["Which browsers?"]

    def test_identity_is_mirrored(self, client, db_session):
        newcomer = make_caller("new_1", "requester", name="Nia New")
        _file_request(client, newcomer)

        user = db_session.get(User, "new_1")
        assert user.name == "Nia New"
        assert user.roles == ["requester"]


# =============================================================================
# TASKS
# =============================================================================


class TestTaskRoutes:

    def test_complete_task(self, client, admin, requester):
        resp = client.post("/api/tasks", json={
            "name": "Cart tests",
            "associated_team": "Payments",
            "associated_project": "Storefront",
        }, headers=caller_headers(admin))
        assert resp.status_code == 201
        task_id = resp.get_json()["task"]["id"]

        resp = client.post(f"/api/tasks/{task_id}/complete", json={}, headers=caller_headers(requester))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["task"]["status"] == "done"
        assert body["request"]["status"] == "pending"

        resp = client.post(f"/api/tasks/{task_id}/complete", json={}, headers=caller_headers(requester))
        assert resp.status_code == 409

    def test_requester_cannot_create_task(self, client, requester):
        resp = client.post("/api/tasks", json={"name": "Nope"}, headers=caller_headers(requester))
        assert resp.status_code == 403


# =============================================================================
# REQUISITIONS
# =============================================================================


class TestRequisitionRoutes:

    def test_submit_and_approve(self, client, requester, manager):
        resp = client.post("/api/requisitions", json={
            "title": "Load test credits",
            "items": [{"name": "Cloud credits", "quantity": 1, "estimated_unit_cost_cents": 90_000}],
        }, headers=caller_headers(requester))
        assert resp.status_code == 201
        requisition_id = resp.get_json()["requisition"]["id"]
        path = f"/api/requisitions/{requisition_id}/transition"

        resp = client.post(path, json={"status": "pending"}, headers=caller_headers(manager))
        assert resp.status_code == 403

        resp = client.post(path, json={"status": "pending"}, headers=caller_headers(requester))
        assert resp.status_code == 200

        resp = client.post(path, json={"status": "approved"}, headers=caller_headers(manager))
        assert resp.status_code == 200
        assert resp.get_json()["requisition"]["status"] == "approved"

        resp = client.get(f"/api/requisitions/{requisition_id}", headers=caller_headers(manager))
        assert [h["status"] for h in resp.get_json()["history"]] == ["draft", "pending", "approved"]

    def test_reject_without_permission_is_403_even_without_reason(self, client, requester):
        resp = client.post("/api/requisitions", json={
            "title": "Device lab",
            "items": [{"name": "Phone", "quantity": 2, "estimated_unit_cost_cents": 40_000}],
        }, headers=caller_headers(requester))
        path = f"/api/requisitions/{resp.get_json()['requisition']['id']}/transition"
        client.post(path, json={"status": "pending"}, headers=caller_headers(requester))

        resp = client.post(path, json={"status": "rejected"}, headers=caller_headers(requester))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "permission_denied"


# =============================================================================
# INVOICES
# =============================================================================


class TestInvoiceRoutes:

    def test_send_and_pay(self, client, hr_admin, requester):
        headers = caller_headers(hr_admin)
        resp = client.post("/api/invoices", json={
            "client_name": "Acme Ltd",
            "line_items": [{"description": "Audit", "quantity": 1, "unit_price_cents": 50_000}],
        }, headers=headers)
        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["total_cents"] == 50_000

        payments = f"/api/invoices/{invoice['id']}/payments"
        resp = client.post(payments, json={"amount_cents": 100}, headers=headers)
        assert resp.status_code == 400

        resp = client.post(f"/api/invoices/{invoice['id']}/transition", json={"status": "sent"}, headers=headers)
        assert resp.status_code == 200

        resp = client.post(payments, json={"amount_cents": 20_000}, headers=headers)
        assert resp.status_code == 201
        assert resp.get_json()["invoice"]["status"] == "partially_paid"
        assert resp.get_json()["invoice"]["outstanding_cents"] == 30_000

        resp = client.post(payments, json={"amount_cents": 30_001}, headers=headers)
        assert resp.status_code == 400

        resp = client.post(payments, json={"amount_cents": 100}, headers=caller_headers(requester))
        assert resp.status_code == 403

        resp = client.get(f"/api/invoices/{invoice['id']}", headers=headers)
        assert [p["amount_cents"] for p in resp.get_json()["invoice"]["payments"]] == [20_000]

    def test_mark_paid_without_permission_is_403(self, client, hr_admin, manager):
        headers = caller_headers(hr_admin)
        resp = client.post("/api/invoices", json={
            "client_name": "Acme Ltd",
            "line_items": [{"description": "Audit", "quantity": 1, "unit_price_cents": 50_000}],
        }, headers=headers)
        transition = f"/api/invoices/{resp.get_json()['invoice']['id']}/transition"
        client.post(transition, json={"status": "sent"}, headers=headers)

        resp = client.post(transition, json={"status": "paid"}, headers=caller_headers(manager))
        assert resp.status_code == 403
        assert resp.get_json()["reason"] == "permission_denied"

        resp = client.post(transition, json={"status": "paid"}, headers=headers)
        assert resp.status_code == 400

        resp = client.get(transition.replace("/transition", ""), headers=headers)
        assert resp.get_json()["invoice"]["status"] == "sent"


# =============================================================================
# REPORTS
# =============================================================================


class TestReportRoutes:

    def test_balance(self, client, hr_admin):
        headers = caller_headers(hr_admin)
        resp = client.post("/api/transactions", json={
            "type": "income",
            "amount_cents": 5_000,
            "occurred_at": "2025-06-02T09:00:00Z",
        }, headers=headers)
        assert resp.status_code == 201

        resp = client.post("/api/transactions", json={"type": "gift", "amount_cents": 5}, headers=headers)
        assert resp.status_code == 400

        resp = client.get("/api/reports/balance?date=2025-06-15", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["monthly_income"] == 5_000

        resp = client.get("/api/reports/balance?date=junk", headers=headers)
        assert resp.status_code == 400

    def test_leaderboard(self, client, requester, qa_tester):
        resp = client.get("/api/reports/leaderboard?month=2025-06", headers=caller_headers(qa_tester))
        assert resp.status_code == 200
        assert resp.get_json()["leaders"] == []

        resp = client.get("/api/reports/leaderboard?limit=500", headers=caller_headers(qa_tester))
        assert resp.status_code == 400

        resp = client.get("/api/reports/leaderboard", headers=caller_headers(requester))
        assert resp.status_code == 403


# =============================================================================
# ADMIN / NOTIFICATIONS / SYSTEM
# =============================================================================


class TestAdminRoutes:

    def test_list_roles(self, client, admin):
        resp = client.get("/api/admin/roles", headers=caller_headers(admin))
        assert resp.status_code == 200
        roles = {r["key"]: r for r in resp.get_json()["roles"]}
        assert roles["qa_tester"]["source"] == "built_in"
        assert "requests:approve" in roles["qa_tester"]["permissions"]

    def test_stored_role_takes_effect(self, client, admin):
        resp = client.post("/api/admin/roles", json={
            "name": "Finance Clerk",
            "permissions": ["invoices:read"],
        }, headers=caller_headers(admin))
        assert resp.status_code == 201

        clerk = make_caller("clerk_1", "finance clerk")
        resp = client.get("/api/invoices", headers=caller_headers(clerk))
        assert resp.status_code == 200

    def test_unknown_permission_code(self, client, admin):
        resp = client.post("/api/admin/roles", json={
            "name": "Typo",
            "permissions": ["invoices:raed"],
        }, headers=caller_headers(admin))
        assert resp.status_code == 400

    def test_requester_cannot_manage_roles(self, client, requester):
        resp = client.post("/api/admin/roles", json={"name": "x", "permissions": []},
                           headers=caller_headers(requester))
        assert resp.status_code == 403

    def test_permission_catalogue(self, client, admin):
        resp = client.get("/api/admin/permissions", headers=caller_headers(admin))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["is_admin"] is True
        codes = [p["code"] for p in body["permissions"]["REQUESTS"]]
        assert "requests:approve" in codes


class TestNotificationRoutes:

    def test_inbox(self, client, requester, qa_tester):
        _file_request(client, requester)
        notification_service.deliver_pending_notifications(mailer=notification_service.Mailer())

        resp = client.get("/api/notifications?unread=true", headers=caller_headers(qa_tester))
        notes = resp.get_json()["notifications"]
        assert len(notes) == 1

        resp = client.post(f"/api/notifications/{notes[0]['id']}/read", headers=caller_headers(requester))
        assert resp.status_code == 404

        resp = client.post(f"/api/notifications/{notes[0]['id']}/read", headers=caller_headers(qa_tester))
        assert resp.status_code == 200
        assert resp.get_json()["notification"]["is_read"] is True


class TestSystemRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"

    def test_cors_for_allowed_origin(self, client, db_session):
        resp = client.get("/health", headers={"Origin": "http://localhost:3000"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert "X-User-Roles" in resp.headers["Access-Control-Allow-Headers"]

        resp = client.get("/health", headers={"Origin": "http://evil.test"})
        assert "Access-Control-Allow-Origin" not in resp.headers
