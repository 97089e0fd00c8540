"""HTTP tests through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

from usage_counter.main import AVAILABLE_ROUTES, create_app
from usage_counter.services.persistence import PersistenceError


@pytest.fixture
def client(settings, clock):
    app = create_app(settings, clock=clock)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


class TestCounterRoutes:
    def test_count_then_counter(self, client):
        response = client.get(
            "/api/count.js",
            params={"userId": "U1", "playerName": "Alice", "sessionId": "S1", "gameId": "9", "time": "1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["stats"] == {"total": 1, "today": 1, "online": 1, "unique": 1, "yourTotal": 1}
        assert "timestamp" in body

        counter = client.get("/api/counter").json()
        assert counter["total"] == 1
        assert counter["online"] == 1
        assert counter["peakOnline"] == 1
        assert counter["peakToday"] == 1
        assert "lastUpdate" in counter

    def test_count_without_user_id(self, client):
        body = client.get("/api/count", params={"sessionId": "S1"}).json()

        assert body["success"] is False
        assert "stats" not in body
        assert client.get("/api/counter.js").json()["total"] == 0

    def test_blank_user_id_is_missing(self, client):
        body = client.get("/api/count", params={"userId": "  "}).json()

        assert body["success"] is False

    def test_online_drops_after_liveness_window(self, client, clock, settings):
        client.get("/api/count", params={"userId": "U1", "sessionId": "S1"})

        clock.advance(seconds=settings.liveness_window_seconds + 1)
        counter = client.get("/api/counter").json()

        assert counter["online"] == 0
        assert counter["total"] == 1

    def test_stats_report_shape(self, client, clock):
        client.get("/api/count", params={"userId": "U1"})
        clock.advance(hours=1)
        client.get("/api/count", params={"userId": "U2"})

        body = client.get("/api/stats.js").json()

        assert len(body["hourly"]) == 12
        assert len(body["daily"]) == 7
        assert [e["count"] for e in body["hourly"][-2:]] == [1, 1]
        assert body["daily"][-1] == {"date": "2026-03-10", "count": 2, "unique": 2}
        assert body["currentHour"] == {"hour": "2026-03-10T13+0000", "count": 1}
        assert body["summary"]["requestsCount"] == 2
        assert body["summary"]["lastResetDate"] == "2026-03-10"
        assert "lastUpdate" in body


class TestHeartbeatRoute:
    def test_heartbeat_creates_session(self, client):
        body = client.get("/api/heartbeat.js", params={"sessionId": "S2", "userId": "U2"}).json()

        assert body == {"success": True, "online": 1}

    def test_heartbeat_missing_params(self, client):
        body = client.get("/api/heartbeat", params={"sessionId": "S2"}).json()

        assert body == {"success": False, "online": 0}

    def test_heartbeat_for_foreign_session(self, client):
        client.get("/api/count", params={"userId": "U1", "sessionId": "S1"})

        body = client.get("/api/heartbeat", params={"sessionId": "S1", "userId": "U2"}).json()

        assert body["success"] is False
        assert body["online"] == 1
        assert body["message"]


class TestErrors:
    def test_unknown_route_lists_available(self, client):
        response = client.get("/api/nope")

        assert response.status_code == 404
        assert response.json()["available"] == AVAILABLE_ROUTES

    def test_persistence_failure_is_reported(self, client, monkeypatch):
        async def failing_save(document):
            raise PersistenceError("disk full")

        store = client.app.state.dispatcher.store
        monkeypatch.setattr(store._store, "save", failing_save)

        response = client.get("/api/count", params={"userId": "U1"})

        assert response.status_code == 503
        assert response.json()["message"] == "disk full"
        assert client.get("/api/counter").json()["total"] == 0

    def test_unexpected_error_is_reported(self, client, monkeypatch):
        async def broken(now):
            raise RuntimeError("boom")

        monkeypatch.setattr(client.app.state.dispatcher.store, "get_summary", broken)

        response = client.get("/api/counter")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal error", "message": "boom"}


class TestStaticRoutes:
    def test_dashboard_page(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "/api/counter.js" in response.text

    def test_client_script_points_at_server(self, client, settings):
        response = client.get("/api/script.js")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'local API = "http://testserver/api"' in response.text
        assert f"task.wait({settings.heartbeat_interval_seconds})" in response.text

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/counter",
            headers={"Origin": "https://example.com", "Access-Control-Request-Method": "GET"},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "https://example.com")


class TestRestart:
    def test_state_survives_app_restart(self, settings, clock):
        with TestClient(create_app(settings, clock=clock)) as first:
            first.get("/api/count", params={"userId": "U1", "sessionId": "S1"})
            first.get("/api/count", params={"userId": "U2"})

        with TestClient(create_app(settings, clock=clock)) as second:
            counter = second.get("/api/counter").json()

        assert counter["total"] == 2
        assert counter["unique"] == 2
        assert counter["online"] == 1
