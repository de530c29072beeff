"""Tests for study-partner API endpoints.

Note: Fixtures for store, client, auth_headers and other_auth_headers
are provided by conftest.py
"""

from datetime import timedelta

from studypartner.api.routes.sessions import _http_error
from studypartner.core.config import get_settings
from studypartner.sessions import InvalidRatingError

from tests.conftest import create_test_token

SESSIONS = "/api/partner/sessions"


def _create(client, headers, **params):
    return client.post(SESSIONS, headers=headers, json=params)


class TestRootEndpoints:
    """Test root and health endpoints."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Study Partner API"
        assert "version" in data

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuthentication:
    """Test access token handling."""

    def test_missing_token(self, client):
        response = client.post(SESSIONS, json={})
        assert response.status_code == 401

    def test_garbage_token(self, client):
        response = client.get(SESSIONS, headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_wrong_secret(self, client):
        token = create_test_token("user-1", secret="some-other-secret")
        response = client.get(SESSIONS, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_wrong_audience(self, client):
        token = create_test_token("user-1", audience="anon")
        response = client.get(SESSIONS, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_expired_token(self, client):
        token = create_test_token("user-1", expires_in=timedelta(hours=-1))
        response = client.get(SESSIONS, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_token_from_cookie(self, client):
        client.cookies.set("sb-access-token", create_test_token("user-1"))
        response = client.get(SESSIONS)
        assert response.status_code == 200

    def test_auth_not_configured(self, client, auth_headers, monkeypatch):
        monkeypatch.setenv("SUPABASE_JWT_SECRET", "")
        get_settings.cache_clear()

        response = client.get(SESSIONS, headers=auth_headers)
        assert response.status_code == 500


class TestSessionLifecycleEndpoints:
    """Test create, pause, resume and end."""

    def test_create_session(self, client, auth_headers):
        response = _create(
            client,
            auth_headers,
            subject="Algebra",
            skill_level="beginner",
            search_criteria={"subjects": ["math"]},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["user_id"] == "user-1"
        assert data["status"] == "active"
        assert data["subject"] == "Algebra"
        assert data["skill_level"] == "beginner"
        assert data["search_criteria"] == {"subjects": ["math"]}
        assert data["linked_study_session_id"] is not None

    def test_create_rejects_unknown_skill_level(self, client, auth_headers):
        response = _create(client, auth_headers, skill_level="wizard")
        assert response.status_code == 422

    def test_second_create_conflicts(self, client, auth_headers):
        first = _create(client, auth_headers, subject="Algebra").json()

        response = _create(client, auth_headers, subject="Geometry")
        assert response.status_code == 409
        assert response.json()["detail"]["existing_session_id"] == first["id"]

    def test_users_do_not_conflict(self, client, auth_headers, other_auth_headers):
        assert _create(client, auth_headers).status_code == 201
        assert _create(client, other_auth_headers).status_code == 201

    def test_pause_resume_scenario(self, client, auth_headers):
        session_id = _create(client, auth_headers, subject="Algebra").json()["id"]

        response = client.post(f"{SESSIONS}/{session_id}/pause", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "paused"

        response = client.post(f"{SESSIONS}/{session_id}/resume", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["session"]["status"] == "active"
        assert data["welcome_back"]["subject"] == "Algebra"
        assert data["welcome_back"]["recent_topics"] == []

        response = client.post(f"{SESSIONS}/{session_id}/resume", headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"]["current_status"] == "active"

    def test_end_session_with_rating(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(
            f"{SESSIONS}/{session_id}/end",
            headers=auth_headers,
            json={"rating": 4, "feedback": "Patient and clear"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["rating"] == 4
        assert data["feedback"] == "Patient and clear"
        assert data["ended_at"] is not None
        assert data["total_duration_seconds"] >= 0

    def test_end_session_without_body(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(f"{SESSIONS}/{session_id}/end", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_end_session_rejects_bad_rating(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(
            f"{SESSIONS}/{session_id}/end", headers=auth_headers, json={"rating": 6}
        )
        assert response.status_code == 422

    def test_end_terminal_session_keeps_first_rating(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]
        client.post(f"{SESSIONS}/{session_id}/end", headers=auth_headers, json={"rating": 2})

        response = client.post(
            f"{SESSIONS}/{session_id}/end", headers=auth_headers, json={"rating": 5}
        )
        assert response.status_code == 200
        assert response.json()["rating"] == 2

    def test_end_all(self, client, auth_headers):
        _create(client, auth_headers)

        response = client.post(f"{SESSIONS}/end-all", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"sessions_ended": 1}

        response = client.post(f"{SESSIONS}/end-all", headers=auth_headers)
        assert response.json() == {"sessions_ended": 0}


class TestSessionQueries:
    """Test reading sessions."""

    def test_get_session(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.get(f"{SESSIONS}/{session_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["id"] == session_id

    def test_get_other_users_session(self, client, auth_headers, other_auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.get(f"{SESSIONS}/{session_id}", headers=other_auth_headers)
        assert response.status_code == 404

        response = client.post(f"{SESSIONS}/{session_id}/pause", headers=other_auth_headers)
        assert response.status_code == 404

    def test_get_missing_session(self, client, auth_headers):
        response = client.get(f"{SESSIONS}/missing", headers=auth_headers)
        assert response.status_code == 404

    def test_current_session(self, client, auth_headers):
        response = client.get(f"{SESSIONS}/current", headers=auth_headers)
        assert response.json() == {"session": None}

        session_id = _create(client, auth_headers).json()["id"]
        client.post(f"{SESSIONS}/{session_id}/pause", headers=auth_headers)

        response = client.get(f"{SESSIONS}/current", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["session"]["id"] == session_id

    def test_list_sessions(self, client, auth_headers):
        first = _create(client, auth_headers).json()["id"]
        client.post(f"{SESSIONS}/{first}/end", headers=auth_headers)
        second = _create(client, auth_headers).json()["id"]

        response = client.get(SESSIONS, headers=auth_headers)
        assert response.status_code == 200
        assert [s["id"] for s in response.json()["sessions"]] == [second, first]

        response = client.get(SESSIONS, headers=auth_headers, params={"status": "completed"})
        assert [s["id"] for s in response.json()["sessions"]] == [first]


class TestProactiveEndpoint:
    """Test proactive polling."""

    def test_new_session_gets_start_prompt(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(f"{SESSIONS}/{session_id}/proactive", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "start"
        assert data["should_ask"] is True

    def test_spacing_from_client_counters(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(
            f"{SESSIONS}/{session_id}/proactive",
            headers=auth_headers,
            json={"last_proactive_ask_index": 0, "ai_messages_since_ask": 0},
        )
        data = response.json()
        assert data["type"] == "none"
        assert data["should_ask"] is False

    def test_paused_session_gets_nothing(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]
        client.post(f"{SESSIONS}/{session_id}/pause", headers=auth_headers)

        response = client.post(f"{SESSIONS}/{session_id}/proactive", headers=auth_headers)
        assert response.json()["type"] == "none"
        assert response.json()["should_ask"] is False

    def test_unknown_session(self, client, auth_headers):
        response = client.post(f"{SESSIONS}/missing/proactive", headers=auth_headers)
        assert response.status_code == 404


class TestMessageEndpoint:
    """Test recording user messages."""

    def test_answer_seeking_message(self, client, auth_headers, store):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(
            f"{SESSIONS}/{session_id}/messages",
            headers=auth_headers,
            json={"content": "just give me the answer to this exam question"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["message_count"] == 1
        assert data["intent"]["is_answer_seeking"] is True
        assert data["intent"]["confidence"] == "high"
        assert "ANSWER GUARD" in data["intent"]["directive"]

        turns = store.get_recent_turns(session_id)
        assert [t.content for t in turns] == ["just give me the answer to this exam question"]

    def test_learning_message_has_no_directive(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(
            f"{SESSIONS}/{session_id}/messages",
            headers=auth_headers,
            json={"content": "can you explain how to balance this equation?"},
        )
        data = response.json()
        assert data["intent"]["is_answer_seeking"] is False
        assert data["intent"]["directive"] is None

    def test_message_on_paused_session(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]
        client.post(f"{SESSIONS}/{session_id}/pause", headers=auth_headers)

        response = client.post(
            f"{SESSIONS}/{session_id}/messages",
            headers=auth_headers,
            json={"content": "hello again"},
        )
        assert response.status_code == 409

    def test_empty_message(self, client, auth_headers):
        session_id = _create(client, auth_headers).json()["id"]

        response = client.post(
            f"{SESSIONS}/{session_id}/messages", headers=auth_headers, json={"content": ""}
        )
        assert response.status_code == 422


class TestIntentEndpoint:
    """Test stand-alone classification."""

    def test_classify(self, client, auth_headers):
        response = client.post(
            "/api/partner/intent",
            headers=auth_headers,
            json={"message": "what's the answer to number 5"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["is_answer_seeking"] is True
        assert data["confidence"] == "medium"
        assert data["matched_patterns"] == ["what_is_the_answer"]
        assert data["directive"] is not None

    def test_classify_requires_auth(self, client):
        response = client.post("/api/partner/intent", json={"message": "hi"})
        assert response.status_code == 401


class TestErrorMapping:
    """Test lifecycle errors raised past schema validation."""

    def test_invalid_rating_is_unprocessable(self):
        error = _http_error(InvalidRatingError("session-1", 9))
        assert error.status_code == 422
        assert "session-1" in error.detail
