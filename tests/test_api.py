"""
HTTP surface tests.

Drive the FastAPI app through TestClient with an in-memory store and a
fixed clock; check status codes, JSON envelopes and the end-to-end
student -> moderator -> gatekeeper flow.
"""
import pytest
from fastapi.testclient import TestClient

from database import MemoryStore
from main import available_routes, create_app

pytestmark = pytest.mark.unit

NEW_REQUEST = {"studentId": "S1", "studentName": "Alice", "reason": "Doctor", "returnTime": "18:00"}
APPROVAL = {"status": "Approved", "moderatorId": "M1", "moderatorName": "Mod1"}


def _create(client, **overrides):
    response = client.post("/api/requests", json={**NEW_REQUEST, **overrides})
    assert response.status_code == 201
    return response.json()["request"]


class TestRoot:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_storage_diagnostics(self, client):
        data = client.get("/test").json()

        assert data["storage"]["backend"] == "memory"
        assert data["users"] == 4
        assert data["requests"] == 0


class TestLogin:
    def test_success_returns_public_user(self, client):
        response = client.post("/api/login", json={"userId": "M1", "password": "mod-pw", "role": "Moderator"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Login successful",
            "user": {"id": "M1", "name": "Mod1", "role": "Moderator"},
        }

    def test_wrong_password_is_401(self, client):
        response = client.post("/api/login", json={"userId": "S1", "password": "nope", "role": "Student"})

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid credentials or role mismatch"}

    def test_role_mismatch_is_401(self, client):
        response = client.post("/api/login", json={"userId": "S1", "password": "alice-pw", "role": "Gatekeeper"})

        assert response.status_code == 401

    def test_empty_body_is_401(self, client):
        assert client.post("/api/login").status_code == 401

    def test_invalid_json_is_400(self, client):
        response = client.post("/api/login", content="{oops", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "Invalid request body"}


class TestCreateRequest:
    def test_created_request_is_pending(self, client):
        response = client.post("/api/requests", json=NEW_REQUEST)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Request created successfully"
        request = body["request"]
        assert request["id"].startswith("REQ")
        assert request["status"] == "Pending"
        assert request["used"] is False
        assert request["timestamp"] == "2026-03-14T09:30:00.000Z"
        for key in ("moderatorId", "moderatorName", "moderatorRemarks", "reviewedAt", "usedAt"):
            assert request[key] is None

    @pytest.mark.parametrize("missing", ["studentId", "studentName", "reason", "returnTime"])
    def test_missing_field_is_400(self, client, missing):
        payload = {k: v for k, v in NEW_REQUEST.items() if k != missing}

        response = client.post("/api/requests", json=payload)

        assert response.status_code == 400
        assert response.json()["message"] == "Missing required fields"

    def test_numeric_values_are_taken_as_text(self, client):
        response = client.post("/api/requests", json={**NEW_REQUEST, "studentId": 1024, "returnTime": 18})

        assert response.status_code == 201
        assert response.json()["request"]["studentId"] == "1024"
        assert response.json()["request"]["returnTime"] == "18"

    def test_non_text_values_are_400(self, client):
        response = client.post("/api/requests", json={**NEW_REQUEST, "reason": ["Doctor"]})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request body"

    def test_storage_failure_is_500(self, clock):
        store = MemoryStore(fail_writes=True)
        client = TestClient(create_app(store=store, clock=clock))

        response = client.post("/api/requests", json=NEW_REQUEST)

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Failed to save request"}
        assert store.load().requests == []


class TestListing:
    def test_list_all_newest_first(self, client, clock):
        first = _create(client)
        clock.advance(minutes=1)
        second = _create(client, studentId="S2", studentName="Bob")

        body = client.get("/api/requests").json()

        assert body["success"] is True
        assert [r["id"] for r in body["requests"]] == [second["id"], first["id"]]

    def test_list_by_student(self, client, clock):
        _create(client, studentId="S2", studentName="Bob")
        clock.advance(minutes=1)
        own = _create(client)

        body = client.get("/api/requests/student/S1").json()

        assert [r["id"] for r in body["requests"]] == [own["id"]]

    def test_list_by_unknown_student_is_empty(self, client):
        assert client.get("/api/requests/student/S9").json() == {"success": True, "requests": []}


class TestReview:
    def test_approve(self, client):
        created = _create(client)

        response = client.put(f"/api/requests/{created['id']}/review", json={**APPROVAL, "remarks": "ok"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Request approved successfully"
        assert body["request"]["status"] == "Approved"
        assert body["request"]["moderatorRemarks"] == "ok"
        assert body["request"]["reviewedAt"] is not None

    def test_reject_without_remarks(self, client):
        created = _create(client)

        response = client.put(
            f"/api/requests/{created['id']}/review",
            json={"status": "Rejected", "moderatorId": "M1", "moderatorName": "Mod1"},
        )

        assert response.json()["message"] == "Request rejected successfully"
        assert response.json()["request"]["moderatorRemarks"] == ""

    def test_unknown_id_is_404(self, client):
        response = client.put("/api/requests/REQ123/review", json=APPROVAL)

        assert response.status_code == 404
        assert response.json()["message"] == "Request not found"

    def test_invalid_status_is_400(self, client):
        created = _create(client)

        response = client.put(f"/api/requests/{created['id']}/review", json={**APPROVAL, "status": "Pending"})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid status"

    def test_missing_moderator_is_400(self, client):
        created = _create(client)

        response = client.put(f"/api/requests/{created['id']}/review", json={"status": "Approved"})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing required fields"

    def test_second_review_is_rejected_and_state_kept(self, client):
        created = _create(client)
        approved = client.put(f"/api/requests/{created['id']}/review", json=APPROVAL).json()["request"]

        response = client.put(
            f"/api/requests/{created['id']}/review",
            json={"status": "Rejected", "moderatorId": "M2", "moderatorName": "Mod2"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Request already reviewed"
        assert client.get("/api/requests").json()["requests"] == [approved]


class TestGatekeeperFlow:
    def test_create_approve_verify_use(self, client):
        created = _create(client)
        assert created["status"] == "Pending"

        review = client.put(f"/api/requests/{created['id']}/review", json=APPROVAL)
        assert review.status_code == 200
        assert review.json()["request"]["status"] == "Approved"

        verify = client.get("/api/verify/S1").json()
        assert verify["hasPass"] is True
        assert verify["pass"]["id"] == created["id"]

        use = client.put(f"/api/requests/{created['id']}/use")
        assert use.status_code == 200
        assert use.json() == {"success": True, "message": "Pass marked as used successfully"}

        after = client.get("/api/verify/S1").json()
        assert after == {
            "success": True,
            "hasPass": False,
            "message": "No valid approved pass found for this student",
        }

    def test_use_twice_is_400(self, client):
        created = _create(client)
        client.put(f"/api/requests/{created['id']}/use")

        response = client.put(f"/api/requests/{created['id']}/use")

        assert response.status_code == 400
        assert response.json()["message"] == "Pass already used"

    def test_use_unknown_is_404(self, client):
        assert client.put("/api/requests/REQ1/use").status_code == 404


class TestStats:
    def test_stats(self, client):
        first = _create(client)
        second = _create(client)
        _create(client)
        client.put(f"/api/requests/{first['id']}/review", json=APPROVAL)
        client.put(f"/api/requests/{second['id']}/review", json={**APPROVAL, "status": "Rejected"})
        client.put(f"/api/requests/{first['id']}/use")

        body = client.get("/api/stats").json()

        assert body == {
            "success": True,
            "stats": {"total": 3, "pending": 1, "approved": 1, "rejected": 1, "today": 3, "used": 1},
        }


class TestQrCode:
    def test_approved_pass_renders_png(self, client):
        created = _create(client)
        client.put(f"/api/requests/{created['id']}/review", json=APPROVAL)

        response = client.get(f"/api/requests/{created['id']}/qr")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    def test_pending_pass_is_400(self, client):
        created = _create(client)

        response = client.get(f"/api/requests/{created['id']}/qr")

        assert response.status_code == 400
        assert response.json()["message"] == "Request not approved"

    def test_unknown_pass_is_404(self, client):
        assert client.get("/api/requests/REQ42/qr").status_code == 404


class TestRoutingAndCors:
    def test_unknown_route_lists_available_routes(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "API endpoint not found"
        assert "POST /api/login" in body["availableRoutes"]
        assert "PUT /api/requests/{request_id}/use" in body["availableRoutes"]

    def test_wrong_method_is_404(self, client):
        response = client.delete("/api/requests")

        assert response.status_code == 404
        assert response.json()["message"] == "API endpoint not found"

    def test_available_routes_cover_api(self, client):
        routes = available_routes(client.app)

        assert routes[:2] == ["POST /api/login", "POST /api/requests"]
        assert "GET /api/stats" in routes
        assert "GET /api/verify/{student_id}" in routes
        assert all(" /api/" in r for r in routes)

    def test_cross_origin_allowed(self, client):
        response = client.get("/api/stats", headers={"Origin": "http://campus.example"})

        assert response.headers["access-control-allow-origin"] in ("*", "http://campus.example")

    def test_preflight(self, client):
        response = client.options(
            "/api/requests",
            headers={"Origin": "http://campus.example", "Access-Control-Request-Method": "PUT"},
        )

        assert response.status_code == 200
