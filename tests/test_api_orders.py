"""
HTTP tests for the order, system and checklist blueprints: status codes,
error codes and the JSON shape the board client depends on.
"""

import pytest

BASE = "/api/v1"


@pytest.fixture()
def order_payload(catalog):
    return {
        "external_ref": "WC-5001",
        "customer_name": "Pat Customer",
        "customer_email": "pat@example.com",
        "customer_department": "Legal",
        "order_date": "2026-10-02T10:00:00Z",
        "delivery_method": "shipping",
        "delivery_address": "1 Main St",
        "systems": [{"type": "laptop", "quantity": 1}],
    }


@pytest.fixture()
def created(client, auth_headers, staff, order_payload):
    res = client.post(f"{BASE}/orders", json=order_payload, headers=auth_headers(staff))
    assert res.status_code == 201
    return res.get_json()


class TestOrderEndpoints:
    def test_create_returns_order_with_systems(self, created):
        assert created["status"] == "ordered"
        assert created["priority"] == 0
        assert created["is_urgent"] is False
        assert len(created["systems"]) == 1
        assert created["systems"][0]["checklist_id"] is not None

    def test_duplicate_external_ref(self, client, auth_headers, staff, created, order_payload):
        res = client.post(f"{BASE}/orders", json=order_payload, headers=auth_headers(staff))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_DUPLICATE_EXTERNAL_REFERENCE"
        assert body["details"]["existing_order_id"] == created["id"]

    def test_missing_fields(self, client, auth_headers, staff, catalog):
        res = client.post(f"{BASE}/orders", json={"external_ref": "WC-1"},
                          headers=auth_headers(staff))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_get_and_404(self, client, auth_headers, staff, created):
        res = client.get(f"{BASE}/orders/{created['id']}", headers=auth_headers(staff))
        assert res.status_code == 200
        assert res.get_json()["external_ref"] == "WC-5001"

        res = client.get(f"{BASE}/orders/9999", headers=auth_headers(staff))
        assert res.status_code == 404
        body = res.get_json()
        assert body["code"] == "ERR_NOT_FOUND"
        assert body["details"] == {"resource": "Order", "resource_id": 9999}

    def test_list_with_filters(self, client, auth_headers, staff, created):
        res = client.get(f"{BASE}/orders?assigned_to=unassigned&search=legal",
                         headers=auth_headers(staff))
        assert res.status_code == 200
        assert [o["id"] for o in res.get_json()["items"]] == [created["id"]]

        res = client.get(f"{BASE}/orders?status=bogus", headers=auth_headers(staff))
        assert res.status_code == 400

    def test_status_change_and_no_change(self, client, auth_headers, staff, created):
        url = f"{BASE}/orders/{created['id']}/status"
        res = client.patch(url, json={"status": "in_progress"}, headers=auth_headers(staff))
        assert res.status_code == 200
        assert res.get_json()["status"] == "in_progress"

        res = client.patch(url, json={"status": "in_progress"}, headers=auth_headers(staff))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_NO_CHANGE"

    def test_complete_blocked(self, client, auth_headers, staff, created):
        res = client.patch(f"{BASE}/orders/{created['id']}/status",
                           json={"status": "complete"}, headers=auth_headers(staff))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_PRECONDITION_FAILED"
        assert body["details"]["blocking_system_ids"] == [created["systems"][0]["id"]]

    def test_priority_bounds_validated(self, client, auth_headers, manager, created):
        url = f"{BASE}/orders/{created['id']}/priority"
        res = client.patch(url, json={"priority": 7}, headers=auth_headers(manager))
        assert res.status_code == 400
        res = client.patch(url, json={"priority": 5}, headers=auth_headers(manager))
        assert res.status_code == 200
        assert res.get_json()["priority"] == 5

    def test_assign_requires_manager(self, client, auth_headers, staff, manager, created):
        url = f"{BASE}/orders/{created['id']}/assign"
        res = client.patch(url, json={"user_id": staff.id}, headers=auth_headers(staff))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

        res = client.patch(url, json={"user_id": staff.id}, headers=auth_headers(manager))
        assert res.status_code == 200
        assert res.get_json()["assigned_to"] == staff.id

    def test_bulk_assign_reports_offending_id(self, client, auth_headers, manager, staff, created):
        res = client.post(f"{BASE}/orders/bulk-assign",
                          json={"order_ids": [created["id"], 4242], "user_id": staff.id},
                          headers=auth_headers(manager))
        assert res.status_code == 404
        assert res.get_json()["details"]["resource_id"] == 4242

        res = client.get(f"{BASE}/orders/{created['id']}", headers=auth_headers(manager))
        assert res.get_json()["assigned_to"] is None

    def test_activity_feed(self, client, auth_headers, staff, created):
        client.patch(f"{BASE}/orders/{created['id']}/status",
                     json={"status": "qa_review"}, headers=auth_headers(staff))
        res = client.get(f"{BASE}/orders/{created['id']}/activity", headers=auth_headers(staff))
        actions = [e["action"] for e in res.get_json()["items"]]
        assert actions == ["order_created", "status_change"]

    def test_delete_admin_only(self, client, auth_headers, manager, admin, created):
        url = f"{BASE}/orders/{created['id']}"
        assert client.delete(url, headers=auth_headers(manager)).status_code == 403
        assert client.delete(url, headers=auth_headers(admin)).status_code == 200
        assert client.get(url, headers=auth_headers(admin)).status_code == 404

    def test_unexpected_error_is_generic(self, client, auth_headers, staff, monkeypatch):
        from buildroom.services import order_service

        def _boom(**_filters):
            raise RuntimeError("connection to db-primary:5432 refused")

        monkeypatch.setattr(order_service, "list_orders", _boom)
        res = client.get(f"{BASE}/orders", headers=auth_headers(staff))
        assert res.status_code == 500
        assert res.get_json() == {"error": "Internal server error", "code": "ERR_INTERNAL"}
        assert b"db-primary" not in res.data

    def test_non_json_body_rejected(self, client, auth_headers, staff, catalog):
        res = client.post(f"{BASE}/orders", data="external_ref=WC-1",
                          content_type="text/plain", headers=auth_headers(staff))
        assert res.status_code == 415


class TestChecklistEndpoints:
    def test_full_flow_to_complete(self, client, auth_headers, staff, manager, created):
        system = created["systems"][0]
        checklist_id = system["checklist_id"]
        checklist = client.get(f"{BASE}/checklists/{checklist_id}",
                               headers=auth_headers(staff)).get_json()
        image, inspection = checklist["steps"]
        assert checklist["system_status"] == "pending"

        res = client.post(f"{BASE}/checklists/{checklist_id}/steps/{image['id']}/complete",
                          json={"time_spent_minutes": 20}, headers=auth_headers(staff))
        assert res.status_code == 200
        assert res.get_json()["system_status"] == "in_progress"

        client.post(f"{BASE}/checklists/{checklist_id}/steps/{inspection['id']}/complete",
                    json={}, headers=auth_headers(staff))
        res = client.post(f"{BASE}/checklists/{checklist_id}/steps/{inspection['id']}/qa-check",
                          json={}, headers=auth_headers(staff))
        assert res.status_code == 403

        res = client.post(f"{BASE}/checklists/{checklist_id}/steps/{inspection['id']}/qa-check",
                          json={"notes": "ok"}, headers=auth_headers(manager))
        assert res.status_code == 200
        body = res.get_json()
        assert body["system_status"] == "complete"
        assert body["progress"] == 1.0

        res = client.post(f"{BASE}/orders/{created['id']}/complete",
                          json={"tracking_number": "1Z1"}, headers=auth_headers(staff))
        assert res.status_code == 200
        assert res.get_json()["status"] == "complete"
        assert res.get_json()["tracking_number"] == "1Z1"


class TestSystemEndpoints:
    def test_patch_and_queue(self, client, auth_headers, staff, created):
        system_id = created["systems"][0]["id"]
        res = client.patch(f"{BASE}/systems/{system_id}", json={"serial_number": "SN-1"},
                           headers=auth_headers(staff))
        assert res.status_code == 200
        assert res.get_json()["serial_number"] == "SN-1"

        res = client.get(f"{BASE}/systems/queue", headers=auth_headers(staff))
        assert [s["id"] for s in res.get_json()["items"]] == [system_id]

    def test_status_complete_blocked(self, client, auth_headers, staff, created):
        system_id = created["systems"][0]["id"]
        res = client.patch(f"{BASE}/systems/{system_id}/status", json={"status": "complete"},
                           headers=auth_headers(staff))
        assert res.status_code == 409
        assert len(res.get_json()["details"]["open_step_ids"]) == 2
