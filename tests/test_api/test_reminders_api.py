"""
Tests for Reminders API endpoints
"""
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from tradeclock.api.deps import get_db, get_current_user_id
from tradeclock.application.reminders_service import RemindersService, ReminderValidationError
from tradeclock.main import app
from tradeclock.infrastructure.db.models import User


NFP = {
    "name": "NFP",
    "currency": "USD",
    "impact": "High",
    "date": "2026-02-06T13:30:00Z",
    "eventSource": "ff",
    "timezone": "UTC",
    "reminders": [{"minutesBefore": 15, "channels": {"push": True}}],
}
NFP_KEY = "ff:nfp-usd-2026-02-06"
NFP_MS = 1770384600000


@pytest.fixture
def client(db_session):
    """Test client with the in-memory database and no user session"""
    app.dependency_overrides[get_db] = lambda: db_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def authenticated_client(client, sample_user_id):
    """Client acting as a logged-in user"""
    app.dependency_overrides[get_current_user_id] = lambda: sample_user_id
    return client


class TestAuth:
    def test_list_requires_login(self, client):
        response = client.get("/api/v1/reminders/")
        assert response.status_code == 401

    def test_preview_is_public(self, client):
        response = client.post("/api/v1/reminders/preview", json={"reminders": []})
        assert response.status_code == 200


class TestUpsertAndRead:
    def test_upsert_returns_key_and_warnings(self, authenticated_client):
        response = authenticated_client.put("/api/v1/reminders/", json=NFP)

        assert response.status_code == 200
        assert response.json() == {"eventKey": NFP_KEY, "warnings": []}

    def test_upsert_reports_policy_warnings(self, authenticated_client):
        payload = {
            **NFP,
            "reminders": [{"minutesBefore": m, "channels": {"inApp": True}} for m in (0, 5, 10, 15)],
            "recurrence": {"enabled": True, "interval": "5m", "ends": {"type": "never"}},
        }
        data = authenticated_client.put("/api/v1/reminders/", json=payload).json()

        assert len(data["warnings"]) == 3
        assert "1152 reminders per day" in data["warnings"][0]

    def test_upsert_empty_object_gets_fallback_key(self, authenticated_client):
        response = authenticated_client.put("/api/v1/reminders/", json={})
        assert response.status_code == 200
        assert response.json()["eventKey"] == "unknown:event reminder"

    def test_upsert_requires_object_body(self, authenticated_client):
        response = authenticated_client.put("/api/v1/reminders/", json=["NFP"])
        assert response.status_code == 422

    def test_non_list_reminders_still_save(self, authenticated_client):
        response = authenticated_client.put("/api/v1/reminders/", json={**NFP, "reminders": 5})

        assert response.status_code == 200
        assert response.json() == {"eventKey": NFP_KEY, "warnings": []}
        assert authenticated_client.get(f"/api/v1/reminders/{NFP_KEY}").json()["reminders"] == []

    def test_non_object_metadata_is_400(self, authenticated_client):
        response = authenticated_client.put("/api/v1/reminders/", json={**NFP, "metadata": "oops"})

        assert response.status_code == 400
        assert response.json() == {"error": "Reminder metadata must be an object"}
        assert authenticated_client.get("/api/v1/reminders/").json() == {"reminders": []}

    def test_validation_error_is_400(self, authenticated_client):
        with patch.object(RemindersService, "upsert", side_effect=ReminderValidationError("bad reminder")):
            response = authenticated_client.put("/api/v1/reminders/", json=NFP)
        assert response.status_code == 400
        assert response.json() == {"error": "bad reminder"}

    def test_get_and_list(self, authenticated_client):
        authenticated_client.put("/api/v1/reminders/", json=NFP)

        doc = authenticated_client.get(f"/api/v1/reminders/{NFP_KEY}").json()
        assert doc["eventKey"] == NFP_KEY
        assert doc["eventEpochMs"] == NFP_MS
        assert doc["channels"] == {"inApp": False, "browser": False, "push": True}

        listed = authenticated_client.get("/api/v1/reminders/").json()["reminders"]
        assert [r["eventKey"] for r in listed] == [NFP_KEY]

    def test_get_missing(self, authenticated_client):
        assert authenticated_client.get("/api/v1/reminders/ff:nothing").status_code == 404

    def test_delete(self, authenticated_client):
        authenticated_client.put("/api/v1/reminders/", json=NFP)

        assert authenticated_client.delete(f"/api/v1/reminders/{NFP_KEY}").json() == {"success": True}
        assert authenticated_client.delete(f"/api/v1/reminders/{NFP_KEY}").status_code == 404


class TestPreviewAndOccurrences:
    def test_preview(self, client):
        response = client.post("/api/v1/reminders/preview", json={
            "reminders": [{"minutesBefore": 5, "channels": {"inApp": True, "browser": True, "push": True}}],
            "recurrence": {"enabled": True, "interval": "1h", "ends": {"type": "never"}},
        })
        data = response.json()
        assert data["estimatedDailyTriggers"] == 72
        assert data["warnings"] == [
            "This schedule could generate about 72 reminders per day, which exceeds the daily cap (50)."
        ]

    def test_occurrences(self, authenticated_client):
        payload = {**NFP, "recurrence": {"enabled": True, "interval": "1h", "ends": {"type": "after", "count": 2}}}
        key = authenticated_client.put("/api/v1/reminders/", json=payload).json()["eventKey"]

        response = authenticated_client.post("/api/v1/reminders/occurrences", json={
            "eventKey": key,
            "rangeStartMs": NFP_MS,
            "rangeEndMs": NFP_MS + 24 * 3600 * 1000,
        })
        data = response.json()
        assert [o["occurrenceEpochMs"] for o in data["occurrences"]] == [NFP_MS, NFP_MS + 3600 * 1000]
        assert data["occurrences"][0]["occurrenceKey"] == f"{key}__{NFP_MS}"

    def test_preview_tolerates_non_string_interval(self, client):
        response = client.post("/api/v1/reminders/preview", json={
            "reminders": [{"minutesBefore": 5, "channels": {"push": True}}],
            "recurrence": {"enabled": True, "interval": {}, "ends": {"type": ["after"]}},
        })
        assert response.status_code == 200
        assert response.json() == {"warnings": [], "estimatedDailyTriggers": 1}

    def test_occurrences_beyond_datetime_limits(self, authenticated_client):
        payload = {**NFP, "recurrence": {"enabled": True, "interval": "1D", "ends": {"type": "never"}}}
        key = authenticated_client.put("/api/v1/reminders/", json=payload).json()["eventKey"]

        response = authenticated_client.post("/api/v1/reminders/occurrences", json={
            "eventKey": key,
            "rangeStartMs": 300_000_000_000_000,
            "rangeEndMs": 300_000_000_000_000 + 24 * 3600 * 1000,
        })
        assert response.status_code == 200
        assert response.json() == {"eventKey": key, "occurrences": []}

    def test_occurrences_missing_record(self, authenticated_client):
        response = authenticated_client.post("/api/v1/reminders/occurrences", json={
            "eventKey": "ff:nothing", "rangeStartMs": 0, "rangeEndMs": 1,
        })
        assert response.status_code == 404


class TestTriggersAndSeries:
    def test_record_client_trigger_once(self, authenticated_client):
        body = {
            "triggerId": f"{NFP_KEY}__{NFP_MS}__15__inApp",
            "eventKey": NFP_KEY,
            "channel": "inApp",
            "occurrenceEpochMs": NFP_MS,
            "minutesBefore": 15,
            "sentAtMs": NFP_MS - 15 * 60 * 1000,
        }
        assert authenticated_client.post("/api/v1/reminders/triggers", json=body).json() == {"recorded": True}
        assert authenticated_client.post("/api/v1/reminders/triggers", json=body).json() == {"recorded": False}

    def test_push_trigger_is_refused(self, authenticated_client):
        response = authenticated_client.post("/api/v1/reminders/triggers", json={
            "triggerId": f"{NFP_KEY}__{NFP_MS}__15__push", "channel": "push",
        })
        assert response.json() == {"recorded": False}

    def test_triggers_require_login(self, client):
        response = client.post("/api/v1/reminders/triggers", json={"triggerId": "x"})
        assert response.status_code == 401

    def test_delete_series(self, authenticated_client):
        for name, series_id in (("Portfolio review", "s-1"), ("Rebalance", "s-1"), ("Journal", "s-2")):
            authenticated_client.put("/api/v1/reminders/", json={
                "name": name,
                "isCustom": True,
                "seriesId": series_id,
                "epochMs": NFP_MS,
                "eventSource": "custom",
                "reminders": [{"minutesBefore": 0, "channels": {"inApp": True}}],
            })

        assert authenticated_client.delete("/api/v1/reminders/series/s-1").json() == {"deleted": 2}
        listed = authenticated_client.get("/api/v1/reminders/").json()["reminders"]
        assert [r["eventKey"] for r in listed] == ["custom:journal"]
        assert authenticated_client.delete("/api/v1/reminders/series/s-1").json() == {"deleted": 0}


class TestInsightsAndPush:
    def test_visibility_refresh_drops_stale_filter(self, authenticated_client, db_session, sample_user_id):
        cache = app.state.visibility_cache
        cache.filter_for(sample_user_id, lambda _: "user")
        db_session.add(User(email="admin@example.com", password_hash="x", role="admin"))
        db_session.commit()

        response = authenticated_client.post("/api/v1/insights/visibility/refresh")
        cache.invalidate()
        assert response.json() == {"visibility": ["public", "internal"]}

    def test_visibility_refresh_requires_login(self, client):
        assert client.post("/api/v1/insights/visibility/refresh").status_code == 401

    def test_event_insight_keys(self, client):
        data = client.post("/api/v1/insights/keys", json={
            "name": "NFP", "currency": "USD", "date": "2026-02-06T13:30:00Z",
        }).json()
        assert data["resolved"] is True
        assert data["compositeKey"] == "nfp-usd-2026-02-06"
        assert "eventIdentity:nfp-usd-2026-02-06" in data["insightKeys"]

    def test_anonymous_visibility(self, client):
        assert client.get("/api/v1/insights/visibility").json() == {"visibility": ["public"]}

    def test_push_status_anonymous(self, client):
        data = client.get("/api/push/status").json()
        assert data["status"] == "auth-required"

    def test_push_subscribe_requires_login(self, client):
        response = client.post("/api/push/subscribe", json={
            "endpoint": "https://push.example.com/sub/1",
            "keys": {"p256dh": "key", "auth": "auth"},
        })
        assert response.status_code == 401


def test_health(client):
    assert client.get("/health").text == "ok"


def test_ready_connects_with_libpq_url(client):
    settings = Mock(DATABASE_URL="postgresql+psycopg://tc:secret@db:5432/tradeclock")
    with patch("tradeclock.infrastructure.db.session.get_settings", return_value=settings), \
         patch("tradeclock.infrastructure.db.session.psycopg.connect") as mock_connect:
        assert client.get("/ready").text == "ok"
    mock_connect.assert_called_once_with("postgresql://tc:secret@db:5432/tradeclock", connect_timeout=3)


def test_user_model_role_default(db_session):
    db_session.add(User(email="trader@example.com", password_hash="x"))
    db_session.commit()
    assert db_session.query(User).one().role == "user"
