"""
Identity and role tests — bearer tokens, 401 vs 403, health checks without auth.
"""

from buildroom.models import db
from buildroom.services.jwt_service import decode_access_token, generate_access_token

BASE = "/api/v1"


class TestIdentity:
    def test_missing_token(self, client):
        res = client.get(f"{BASE}/orders")
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_garbage_token(self, client):
        res = client.get(f"{BASE}/orders", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"

    def test_expired_token(self, client, staff):
        token = generate_access_token(staff.id, staff.role, expires_in=-10)
        res = client.get(f"{BASE}/orders", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

    def test_inactive_user(self, client, auth_headers, staff):
        headers = auth_headers(staff)
        staff.is_active = False
        db.session.commit()
        assert client.get(f"{BASE}/orders", headers=headers).status_code == 401

    def test_valid_token(self, client, auth_headers, staff):
        res = client.get(f"{BASE}/orders", headers=auth_headers(staff))
        assert res.status_code == 200
        assert res.get_json() == {"items": [], "total": 0}

    def test_token_round_trip(self, staff):
        payload = decode_access_token(generate_access_token(staff.id, staff.role))
        assert payload["sub"] == str(staff.id)
        assert payload["role"] == "staff"


class TestHealthChecks:
    def test_health_needs_no_token(self, client):
        assert client.get(f"{BASE}/health/ready").status_code == 200
        res = client.get(f"{BASE}/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_response_headers(self, client):
        res = client.get(f"{BASE}/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers
        assert res.headers["X-Content-Type-Options"] == "nosniff"

    def test_unknown_route_is_json(self, client):
        res = client.get(f"{BASE}/nope")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


class TestRoleGates:
    def test_catalog_writes_need_manager(self, client, auth_headers, staff, manager):
        payload = {"name": "Tablet", "code": "tablet"}
        res = client.post(f"{BASE}/system-types", json=payload, headers=auth_headers(staff))
        assert res.status_code == 403
        res = client.post(f"{BASE}/system-types", json=payload, headers=auth_headers(manager))
        assert res.status_code == 201
        res = client.post(f"{BASE}/system-types", json=payload, headers=auth_headers(manager))
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_template_endpoints(self, client, auth_headers, manager, catalog):
        res = client.post(f"{BASE}/checklist-templates", json={
            "name": "Laptop v2", "system_type_id": catalog["laptop"].id,
            "steps": [{"name": "Image"}, {"name": "Inspect", "requires_qa": True}],
        }, headers=auth_headers(manager))
        assert res.status_code == 201
        new_id = res.get_json()["id"]

        res = client.get(f"{BASE}/checklist-templates?active=true", headers=auth_headers(manager))
        assert [t["id"] for t in res.get_json()["items"]] == [new_id]

        res = client.post(f"{BASE}/checklist-templates/{new_id}/deactivate",
                          headers=auth_headers(manager))
        assert res.status_code == 200
        assert res.get_json()["is_active"] is False

    def test_metrics_self_or_manager(self, client, auth_headers, staff, other_staff, manager):
        url = f"{BASE}/metrics/users/{staff.id}/performance"
        assert client.get(url, headers=auth_headers(staff)).status_code == 200
        assert client.get(url, headers=auth_headers(other_staff)).status_code == 403
        res = client.get(url, headers=auth_headers(manager))
        assert res.status_code == 200
        assert res.get_json()["steps_completed"] == 0

    def test_metrics_bad_date(self, client, auth_headers, staff):
        res = client.get(f"{BASE}/metrics/users/{staff.id}/performance?start=notadate",
                         headers=auth_headers(staff))
        assert res.status_code == 400
