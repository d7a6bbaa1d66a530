"""HTTP API tests — FastAPI endpoints over the session service with a mocked DB.

The lifespan handler loads the bundled survey; the repository is swapped
for MockRepository and ``get_db`` yields an AsyncMock, so no database is
needed.  These tests cover the API contract: status codes, identity
headers and step shapes.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from survey_server.app import create_app
from survey_server.config import ServerSettings
from survey_server.dependencies import get_db

from helpers.db import MockRepository

HEADERS = {"X-Subject-ID": "subject1"}


async def _mock_db():
    yield AsyncMock()


def _client(definition_path, **settings):
    app = create_app(ServerSettings(survey_definition_path=str(definition_path), **settings))
    app.dependency_overrides[get_db] = _mock_db
    return app


@pytest.fixture
def client(definition_path):
    app = _client(definition_path)
    with TestClient(app) as c:
        app.state.service._repo = MockRepository()
        yield c
    app.dependency_overrides.clear()


def _create(client, session_id="s1", **body):
    return client.post("/api/v1/sessions", json={"session_id": session_id, **body}, headers=HEADERS)


def _post(client, path, session_id="s1", json=None):
    return client.post(f"/api/v1/sessions/{session_id}{path}", json=json, headers=HEADERS)


# =====================================================================
# Identity headers
# =====================================================================


class TestIdentity:

    def test_missing_subject_header(self, client):
        resp = client.post("/api/v1/sessions", json={"session_id": "s1"})
        assert resp.status_code == 401

    def test_proxy_secret_required_when_configured(self, definition_path):
        app = _client(definition_path, trusted_proxy_secret="s3cret")
        with TestClient(app) as c:
            app.state.service._repo = MockRepository()
            resp = c.get("/api/v1/sessions", headers=HEADERS)
            assert resp.status_code == 403
            resp = c.get("/api/v1/sessions", headers={**HEADERS, "X-Proxy-Secret": "wrong"})
            assert resp.status_code == 403
            resp = c.get("/api/v1/sessions", headers={**HEADERS, "X-Proxy-Secret": "s3cret"})
            assert resp.status_code == 200


# =====================================================================
# Sessions
# =====================================================================


class TestSessions:

    def test_create_and_get(self, client):
        resp = _create(client)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["status"] == "created"
        assert body["current_index"] == 0

        resp = client.get("/api/v1/sessions/s1", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["session_id"] == "s1"

    def test_duplicate_is_409(self, client):
        _create(client)
        resp = _create(client)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Resource already exists"

    def test_unknown_session_is_404(self, client):
        assert client.get("/api/v1/sessions/nope", headers=HEADERS).status_code == 404
        assert client.get("/api/v1/sessions/nope/step", headers=HEADERS).status_code == 404

    def test_unsupported_language_is_400(self, client):
        resp = _create(client, language="fr")
        assert resp.status_code == 400
        assert "Unsupported language" in resp.json()["detail"]

    def test_sessions_are_scoped_to_subject(self, client):
        _create(client, "a")
        _create(client, "b")
        resp = client.get("/api/v1/sessions", headers=HEADERS)
        assert {s["session_id"] for s in resp.json()} == {"a", "b"}
        resp = client.get("/api/v1/sessions", headers={"X-Subject-ID": "someone-else"})
        assert resp.json() == []


# =====================================================================
# Steps
# =====================================================================


class TestSteps:

    def test_step_shape(self, client):
        _create(client)
        resp = client.get("/api/v1/sessions/s1/step", headers=HEADERS)
        assert resp.status_code == 200
        step = resp.json()
        assert step["type"] == "question"
        assert step["index"] == 0
        assert step["total"] == 7
        assert step["view"]["question"]["short_name"] == "age"
        assert step["view"]["answer"]["numeric_value"] is None

    def test_walk_to_routing_and_back_into_survey(self, client):
        _create(client)
        assert _post(client, "/answer", json={"value": 30}).status_code == 200
        _post(client, "/advance")
        step = _post(client, "/answer", json={"value": 1}).json()
        assert step["view"]["answer"]["text"] == "Yes"

        step = _post(client, "/advance").json()
        assert step == {"type": "routing", "eligible": True, "pending_routing": "consent"}

        step = _post(client, "/routing/ack").json()
        assert step["type"] == "question"
        assert step["view"]["question"]["short_name"] == "hiv_tested"

        step = _post(client, "/retreat").json()
        assert step["view"]["question"]["short_name"] == "lives_in_area"

    def test_advance_moves_past_routing(self, client):
        _create(client)
        _post(client, "/answer", json={"value": 30})
        _post(client, "/advance")
        _post(client, "/answer", json={"value": 1})
        assert _post(client, "/advance").json()["type"] == "routing"

        step = _post(client, "/advance").json()
        assert step["type"] == "question"
        assert step["view"]["question"]["short_name"] == "hiv_tested"

    def test_validation_error_in_step(self, client):
        _create(client)
        _post(client, "/answer", json={"value": 200})
        resp = _post(client, "/advance")
        assert resp.status_code == 200
        assert resp.json()["error"] == "Please enter an age between 0 and 120"

    def test_bad_answer_is_400(self, client):
        _create(client)
        resp = _post(client, "/answer", json={"value": {"not": "a number"}})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "numeric answers must be a number"

    def test_jump(self, client):
        _create(client)
        step = _post(client, "/jump", json={"target": "lives_in_area"}).json()
        assert step["index"] == 1
        step = _post(client, "/jump", json={"target": 0}).json()
        assert step["index"] == 0
        assert _post(client, "/jump", json={"target": "nope"}).status_code == 404

    def test_ack_without_pending_routing_is_400(self, client):
        _create(client)
        assert _post(client, "/routing/ack").status_code == 400

    def test_rejection_ends_session(self, client):
        _create(client)
        _post(client, "/answer", json={"value": 12})
        _post(client, "/advance")
        _post(client, "/answer", json={"value": 1})
        step = _post(client, "/advance").json()
        assert step["pending_routing"] == "rejection"

        assert _post(client, "/routing/ack").json() == {"type": "ineligible"}
        resp = client.get("/api/v1/sessions/s1", headers=HEADERS)
        assert resp.json()["status"] == "ineligible"
        assert _post(client, "/advance").status_code == 400


# =====================================================================
# Survey definition
# =====================================================================


class TestSurvey:

    def test_survey_metadata(self, client):
        body = client.get("/api/v1/survey").json()
        assert body["name"] == "Community health screening"
        assert body["languages"] == ["en", "th"]
        assert [s["section_type"] for s in body["sections"]] == ["eligibility", "main", "conclusion"]

    def test_questions_by_language(self, client):
        questions = client.get("/api/v1/survey/questions", params={"language": "th"}).json()
        assert len(questions) == 7
        assert questions[1]["options"][1]["text"] == "ใช่"

    def test_unknown_language_is_404(self, client):
        assert client.get("/api/v1/survey/questions", params={"language": "fr"}).status_code == 404
