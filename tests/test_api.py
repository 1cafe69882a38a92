"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from capability_bus.api.app import create_app
from capability_bus.arbiter.arbiter import MAX_TRACKED_STATES
from capability_bus.catalog.registry import SimulatedPermissionProvider
from capability_bus.models.config import BusConfig
from capability_bus.models.request import PermissionStatus, RequestKind
from capability_bus.runtime import BusRuntime


@pytest.fixture
def provider():
    return SimulatedPermissionProvider(
        statuses={RequestKind.LOCATION_ACCESS: PermissionStatus.GRANTED},
        user_choices={RequestKind.MICROPHONE_ACCESS: False},
    )


@pytest.fixture
def runtime(provider):
    return BusRuntime(
        config=BusConfig(positive_action_threshold=2),
        provider=provider,
    )


@pytest.fixture
def client(runtime):
    """Create a test client with a fresh runtime (lifespan started)."""
    app = create_app(runtime=runtime)
    with TestClient(app) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["arbiter"] == "running"
        assert data["phase"] == "active"


class TestCapabilityEndpoints:
    def test_granted_request_is_resolved_immediately(self, client):
        response = client.post("/capabilities/requests", json={"kind": "location_access"})
        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "auto_granted"
        assert data["outcome"] == "granted"
        assert data["active"] is None

    def test_undetermined_request_is_presented(self, client):
        response = client.post("/capabilities/requests", json={"kind": "camera_access"})
        data = response.json()
        assert data["state"] == "undetermined_presenting"
        assert data["outcome"] == "pending"
        assert data["active"]["id"] == data["request_id"]
        assert data["active"]["presentation"]["cta_text"] == "Allow Camera Access"

        active = client.get("/capabilities/active").json()["active"]
        assert active["kind"] == "camera_access"

    def test_unknown_kind_rejected(self, client):
        response = client.post("/capabilities/requests", json={"kind": "bluetooth_access"})
        assert response.status_code == 422

    def test_accept(self, client):
        request_id = client.post(
            "/capabilities/requests", json={"kind": "photos_access"}
        ).json()["request_id"]

        response = client.post("/capabilities/active/accept")
        assert response.status_code == 200
        assert response.json() == {"granted": True, "active": None}

        status = client.get(f"/capabilities/requests/{request_id}").json()
        assert status["state"] == "granted"
        assert status["outcome"] == "granted"

    def test_denied_accept_offers_settings(self, client):
        request_id = client.post(
            "/capabilities/requests", json={"kind": "microphone_access"}
        ).json()["request_id"]

        data = client.post("/capabilities/active/accept").json()
        assert data["granted"] is False
        assert data["active"]["id"] == request_id
        assert data["active"]["settings_redirect"] is True
        assert data["active"]["presentation"]["cta_text"] == "Allow in Settings"

        data = client.post("/capabilities/active/accept").json()
        assert data == {"granted": False, "active": None}
        assert client.get(f"/capabilities/requests/{request_id}").json()["outcome"] == "dismissed"

    def test_supersession(self, client):
        first = client.post("/capabilities/requests", json={"kind": "camera_access"}).json()
        second = client.post("/capabilities/requests", json={"kind": "contacts_access"}).json()

        assert second["active"]["id"] == second["request_id"]
        superseded = client.get(f"/capabilities/requests/{first['request_id']}").json()
        assert superseded["state"] == "superseded"
        assert superseded["outcome"] == "pending"

    def test_dismiss(self, client):
        request_id = client.post(
            "/capabilities/requests", json={"kind": "calendar_access"}
        ).json()["request_id"]
        response = client.post("/capabilities/active/dismiss")
        assert response.json() == {"status": "dismissed", "active": None}
        assert client.get(f"/capabilities/requests/{request_id}").json()["outcome"] == "dismissed"

        assert client.post("/capabilities/active/dismiss").status_code == 404
        assert client.post("/capabilities/active/accept").status_code == 404

    def test_accept_wrong_id(self, client):
        client.post("/capabilities/requests", json={"kind": "calendar_access"})
        response = client.post("/capabilities/active/accept", params={"request_id": "req_other"})
        assert response.status_code == 404

    def test_unknown_request(self, client):
        assert client.get("/capabilities/requests/req_missing").status_code == 404


class TestNotificationEndpoints:
    def test_create_and_list(self, client):
        response = client.post("/notifications", json={
            "type": "success",
            "title": "Trip booked",
            "message": "Your driver is on the way",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["shown"] is True
        assert data["notifications"][0]["id"] == data["id"]
        assert data["notifications"][0]["style"]["color"] == "green"

        listed = client.get("/notifications").json()
        assert [n["id"] for n in listed] == [data["id"]]

    def test_bounded_and_deduplicated(self, client):
        for i in range(4):
            client.post("/notifications", json={"type": "info", "title": f"n{i}", "message": "m"})
        duplicate = client.post("/notifications", json={"type": "info", "title": "n3", "message": "m"}).json()

        assert duplicate["shown"] is False
        titles = [n["content"]["title"] for n in duplicate["notifications"]]
        assert titles == ["n3", "n2", "n1"]

    def test_custom_notification(self, client):
        data = client.post("/notifications/custom", json={
            "title": "Custom",
            "message": "Styled",
            "style": {"symbol": "star", "color": "indigo"},
        }).json()
        style = data["notifications"][0]["style"]
        assert style["size"] == "normal"
        assert style["haptic"] == "warning"

    def test_tap_and_swipe(self, client):
        item_id = client.post(
            "/notifications", json={"type": "warning", "title": "Low battery", "message": "m"}
        ).json()["id"]

        assert client.post(f"/notifications/{item_id}/tap").status_code == 200
        assert len(client.get("/notifications").json()) == 1

        response = client.delete(f"/notifications/{item_id}")
        assert response.json() == {"removed": True, "notifications": []}
        assert client.delete(f"/notifications/{item_id}").json()["removed"] is False
        assert client.post(f"/notifications/{item_id}/tap").status_code == 404

    def test_tap_dismiss(self, client):
        item_id = client.post(
            "/notifications", json={"type": "error", "title": "Failed", "message": "m"}
        ).json()["id"]
        data = client.post(f"/notifications/{item_id}/tap", params={"dismiss": True}).json()
        assert data["notifications"] == []


class TestLifecycleEndpoints:
    def test_background_dismisses_active_request(self, client):
        request_id = client.post(
            "/capabilities/requests", json={"kind": "contacts_access"}
        ).json()["request_id"]

        data = client.post("/lifecycle", json={"phase": "background"}).json()
        assert data == {"phase": "background", "changed": True, "active": None}
        assert client.get(f"/capabilities/requests/{request_id}").json()["outcome"] == "dismissed"

    def test_grant_in_settings_resolves_on_return(self, client, provider):
        request_id = client.post(
            "/capabilities/requests", json={"kind": "reminders_access"}
        ).json()["request_id"]

        data = client.post("/lifecycle", json={"phase": "inactive"}).json()
        assert data["active"]["stale"] is True

        provider.set_status(RequestKind.REMINDERS_ACCESS, PermissionStatus.GRANTED)
        data = client.post("/lifecycle", json={"phase": "active"}).json()
        assert data["active"] is None
        assert client.get(f"/capabilities/requests/{request_id}").json()["outcome"] == "granted"

    def test_same_phase_unchanged(self, client):
        data = client.post("/lifecycle", json={"phase": "active"}).json()
        assert data["changed"] is False
        assert client.get("/lifecycle").json() == {"phase": "active"}


class TestRatingEndpoints:
    def test_threshold_presents_rating_request(self, client):
        first = client.post("/rating/positive-actions").json()
        assert first["count"] == 1
        assert first["rating_request_id"] is None

        second = client.post("/rating/positive-actions").json()
        assert second["count"] == 2
        assert second["rating_request_id"] is not None
        assert second["active"]["kind"] == "app_rating"
        assert second["active"]["presentation"]["dismiss_text"] == "Later"

        third = client.post("/rating/positive-actions").json()
        assert third["rating_request_id"] is None


class TestAppFactory:
    def test_reads_environment_config(self, monkeypatch):
        monkeypatch.setenv("CAPBUS_MAX_SHOWN_NOTIFICATIONS", "1")
        monkeypatch.setenv("CAPBUS_POSITIVE_ACTION_THRESHOLD", "4")

        app = create_app()

        config = app.state.runtime.config
        assert config.max_shown_notifications == 1
        assert config.positive_action_threshold == 4

    def test_explicit_config_wins(self, monkeypatch):
        monkeypatch.setenv("CAPBUS_MAX_SHOWN_NOTIFICATIONS", "1")
        app = create_app(config=BusConfig(max_shown_notifications=5))
        assert app.state.runtime.config.max_shown_notifications == 5

    def test_outcomes_bounded_like_request_history(self, client):
        ids = [
            client.post("/capabilities/requests", json={"kind": "location_access"}).json()["request_id"]
            for _ in range(MAX_TRACKED_STATES + 10)
        ]

        assert len(client.app.state.outcomes) == MAX_TRACKED_STATES
        assert client.get(f"/capabilities/requests/{ids[0]}").status_code == 404
        assert ids[0] not in client.app.state.outcomes

        oldest_kept = client.get(f"/capabilities/requests/{ids[10]}").json()
        assert oldest_kept["state"] == "auto_granted"
        assert oldest_kept["outcome"] == "granted"
