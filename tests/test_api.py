"""
Tests for the HTTP surface

Runs the FastAPI app against a seeded in-memory forum and checks the
status code every core error maps to.
"""

import pytest
from fastapi.testclient import TestClient

from qaforum.core import Forum
from qaforum.db import InMemoryForumStore
from qaforum.db.seed import seed_demo_data
from qaforum.main import app


@pytest.fixture
def forum():
    store = InMemoryForumStore()
    seed_demo_data(store)
    return Forum(store)


@pytest.fixture
def client(forum):
    app.state.forum = forum
    with TestClient(app) as client:
        yield client
    del app.state.forum


class TestSystemEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_detailed_reports_store(self, client):
        body = client.get("/health/detailed").json()
        assert body["status"] == "healthy"
        assert body["checks"]["store"]["backend"] == "InMemoryForumStore"
        assert body["checks"]["store"]["users"] == 6

    def test_metrics_count_curations(self, client):
        client.get("/api/students/studentX/questions/Q1/curated")
        body = client.get("/metrics").json()
        assert body["curations_total"] == 1
        assert body["requests_total"] >= 1

    def test_request_id_header(self, client):
        response = client.get("/health", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"

    def test_shutdown_leaves_store_alone(self, forum, caplog):
        app.state.forum = forum
        try:
            with caplog.at_level("INFO", logger="qaforum.main"):
                with TestClient(app):
                    pass
        finally:
            del app.state.forum

        messages = [r.getMessage() for r in caplog.records if r.name == "qaforum.main"]
        assert messages[-1] == "Application shutdown complete"
        assert forum.curate("studentX", "Q1").answer_ids == ["A3", "A2", "A1"]


class TestTrustAndCuration:

    def test_curated_demo_question(self, client):
        response = client.get("/api/students/studentX/questions/Q1/curated")

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "curated"
        assert [a["answer_id"] for a in body["answers"]] == ["A3", "A2", "A1"]
        assert body["answers"][0]["accepted"] is True
        assert body["answers"][1]["score"] == 2.0

    def test_student_without_trust_gets_empty_valid_result(self, client):
        body = client.get("/api/students/s1/questions/Q1/curated").json()

        assert body["answers"] == []
        assert body["outcome"] == "no_trusted_reviewers"
        assert "do not trust" in body["message"]

    def test_trust_map(self, client):
        body = client.get("/api/students/studentX/trust").json()
        assert body["reviewers"] == [
            {"reviewer_id": "rev2", "weight": 2.0},
            {"reviewer_id": "rev1", "weight": 1.0},
        ]

    def test_trust_edit_needs_reload(self, client):
        client.get("/api/students/studentX/questions/Q1/curated")

        response = client.delete("/api/students/studentX/trust/rev1")
        assert response.status_code == 204

        stale = client.get("/api/students/studentX/questions/Q1/curated").json()
        assert [a["answer_id"] for a in stale["answers"]] == ["A3", "A2", "A1"]

        reloaded = client.post("/api/students/studentX/curation/reload").json()
        assert reloaded["trusted_reviewer_count"] == 1

        fresh = client.get("/api/students/studentX/questions/Q1/curated").json()
        assert [a["answer_id"] for a in fresh["answers"]] == ["A2"]

    def test_check_updates(self, client):
        first = client.post("/api/students/studentX/curation/check-updates").json()
        assert first["result"] is None

        client.get("/api/students/studentX/questions/Q1/curated")
        client.put("/api/students/studentX/trust/s1", json={"weight": 0.5})

        body = client.post("/api/students/studentX/curation/check-updates").json()
        assert [a["answer_id"] for a in body["result"]["answers"]] == ["A3", "A2", "A1", "A4"]

    def test_set_trust(self, client):
        response = client.put("/api/students/s1/trust/rev2", json={"weight": 3})
        assert response.status_code == 200
        assert response.json() == {"reviewer_id": "rev2", "weight": 3.0}

    def test_remove_missing_trust_is_404(self, client):
        assert client.delete("/api/students/s1/trust/rev1").status_code == 404

    def test_end_curation_session(self, client, forum):
        client.get("/api/students/studentX/questions/Q1/curated")
        client.delete("/api/students/studentX/trust/rev1")

        assert client.delete("/api/students/studentX/curation").status_code == 204
        assert forum.engine_count == 0
        assert client.delete("/api/students/studentX/curation").status_code == 404

        fresh = client.get("/api/students/studentX/questions/Q1/curated").json()
        assert [a["answer_id"] for a in fresh["answers"]] == ["A2"]


class TestRolesAndRequests:

    def test_last_admin_is_409(self, client):
        response = client.put(
            "/api/users/admin1/roles",
            json={"roles": ["student"], "acting_admin_id": "admin1"},
        )
        assert response.status_code == 409
        assert client.get("/api/users/admin1/roles").json()["roles"] == ["admin"]

    def test_assign_roles_with_actor_header(self, client):
        response = client.put(
            "/api/users/s1/roles",
            json={"roles": ["student", "staff"]},
            headers={"X-Actor-Id": "admin1"},
        )
        assert response.status_code == 200
        assert response.json()["roles"] == ["student", "staff"]
        assert response.json()["active_role"] == "student"

    def test_assign_roles_without_actor_is_422(self, client):
        response = client.put("/api/users/s1/roles", json={"roles": ["student"]})
        assert response.status_code == 422

    def test_unknown_role_is_422(self, client):
        response = client.put(
            "/api/users/s1/roles",
            json={"roles": ["wizard"], "acting_admin_id": "admin1"},
        )
        assert response.status_code == 422

    def test_unknown_user_is_404(self, client):
        assert client.get("/api/users/ghost/roles").status_code == 404

    def test_active_role_not_held_is_422(self, client):
        response = client.get("/api/users/s1/roles", params={"active_role": "admin"})
        assert response.status_code == 422

    def test_request_lifecycle(self, client):
        submitted = client.post("/api/reviewer-requests", json={"student_id": "s1"})
        assert submitted.status_code == 201
        assert submitted.json()["status"] == "Pending"

        duplicate = client.post("/api/reviewer-requests", json={"student_id": "s1"})
        assert duplicate.status_code == 409

        pending = client.get("/api/reviewer-requests/pending").json()
        assert [r["student_id"] for r in pending] == ["s1"]

        decided = client.post(
            "/api/reviewer-requests/s1/decision",
            json={"approve": True, "acting_instructor_id": "instr1"},
        )
        assert decided.status_code == 200
        assert decided.json()["status"] == "Approved"
        assert "reviewer" in client.get("/api/users/s1/roles").json()["roles"]
        assert client.get("/api/reviewer-profiles/s1").status_code == 200

    def test_decision_without_pending_is_404(self, client):
        response = client.post(
            "/api/reviewer-requests/s1/decision",
            json={"approve": False, "acting_instructor_id": "instr1"},
        )
        assert response.status_code == 404


class TestReviewerProfiles:

    def test_list_and_detail(self, client):
        profiles = client.get("/api/reviewer-profiles").json()
        assert [p["user_id"] for p in profiles] == ["rev1", "rev2"]

        detail = client.get("/api/reviewer-profiles/rev1").json()
        assert [r["review_id"] for r in detail["reviews"]] == ["R3", "R1"]

    def test_update_experience(self, client):
        response = client.put(
            "/api/reviewer-profiles/rev2/experience",
            json={"experience": "TA for CS201"},
        )
        assert response.status_code == 200
        assert response.json()["experience"] == "TA for CS201"

    def test_missing_profile_is_404(self, client):
        assert client.get("/api/reviewer-profiles/s1").status_code == 404


class TestStoreOutage:

    def test_persistence_failure_is_503(self, client, forum):
        def down(answer_id):
            from qaforum.core import PersistenceUnavailable
            raise PersistenceUnavailable("database unreachable")

        forum.store.reviews_for_answer = down

        response = client.get("/api/students/studentX/questions/Q1/curated")
        assert response.status_code == 503
