from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from app.main import app
from health.health import HealthRegistry, record_fetch_error
from normalize.models import Incident, IncidentType, Location, Status
from realtime.bus import EventBus
from realtime.sse import format_event
from render.engine import InMemoryMapEngine
from render.session import MapSession
from render.zoom import derive_severity


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _incident(iid: str, incident_type: IncidentType) -> Incident:
    return Incident(
        id=iid,
        type=incident_type,
        severity=derive_severity(incident_type),
        location=Location(lat=44.0, lng=-72.7),
        status=Status.ACTIVE,
        source="test",
        title=iid,
    )


class FakeRefresher:
    def __init__(self, incidents: list[Incident]) -> None:
        self.incidents = incidents
        self.loading = False
        self.last_error: str | None = None
        self.last_updated = NOW
        self.last_rejections = {"out_of_region": 2}
        self.refresh_calls = 0

    def request_refresh(self) -> None:
        self.refresh_calls += 1


@pytest.fixture
def api(monkeypatch: pytest.MonkeyPatch):
    incidents = [
        _incident("closure", IncidentType.CLOSURE),
        _incident("crash", IncidentType.ACCIDENT),
        _incident("pothole", IncidentType.HAZARD),
    ]
    engine = InMemoryMapEngine()
    session = MapSession(engine, zoom=11)
    session.update_incidents(incidents)
    refresher = FakeRefresher(incidents)
    health = HealthRegistry()
    record_fetch_error(
        health, source_id="usgs_gauges", now=NOW, status_code=503, fetch_ms=12, error="http_503"
    )

    monkeypatch.setattr(app.state, "session", session, raising=False)
    monkeypatch.setattr(app.state, "refresher", refresher, raising=False)
    monkeypatch.setattr(app.state, "health", health, raising=False)
    monkeypatch.setattr(app.state, "bus", EventBus(), raising=False)
    return TestClient(app), session, refresher, engine


def test_api_incidents(api) -> None:
    client, _, _, _ = api
    resp = client.get("/api/incidents")
    assert resp.status_code == 200
    body = resp.json()
    assert [i["id"] for i in body["incidents"]] == ["closure", "crash", "pothole"]
    assert body["loading"] is False
    assert body["last_error"] is None
    assert body["last_updated"] == "2026-03-10T12:00:00Z"
    assert body["rejections"] == {"out_of_region": 2}


def test_api_visible_incidents_by_zoom(api) -> None:
    client, _, _, _ = api
    assert [i["id"] for i in client.get("/api/incidents/visible").json()] == [
        "closure",
        "crash",
        "pothole",
    ]
    assert [i["id"] for i in client.get("/api/incidents/visible?zoom=6").json()] == ["closure"]
    assert [i["id"] for i in client.get("/api/incidents/visible?zoom=9").json()] == [
        "closure",
        "crash",
    ]
    assert client.get("/api/incidents/visible?zoom=99").status_code == 400


def test_api_refresh_is_accepted(api) -> None:
    client, _, refresher, _ = api
    resp = client.post("/api/incidents/refresh")
    assert resp.status_code == 202
    assert refresher.refresh_calls == 1


def test_api_zoom_reconciles_markers(api) -> None:
    client, session, _, engine = api
    resp = client.post("/api/map/zoom", json={"zoom": 6})
    assert resp.status_code == 200
    body = resp.json()
    assert body["zoom"] == 6
    assert sorted(body["destroyed"]) == ["crash", "pothole"]
    assert session.layer.rendered_ids == {"closure"}
    assert len(engine.markers) == 1

    assert client.post("/api/map/zoom", json={"zoom": -1}).status_code == 400
    assert session.zoom == 6


def test_api_non_finite_zoom_is_a_client_error(api) -> None:
    client, session, _, _ = api
    for value in ("nan", "inf", "-inf"):
        resp = client.get(f"/api/incidents/visible?zoom={value}")
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_zoom"

    resp = client.post(
        "/api/map/zoom",
        content=b'{"zoom": NaN}',
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "invalid_zoom", "zoom": "nan"}
    assert session.zoom == 11


def test_api_marker_click_toggles_popup(api) -> None:
    client, _, _, engine = api
    resp = client.post("/api/markers/crash/click")
    assert resp.json() == {"state": "OPEN", "incident_id": "crash"}
    assert len(engine.popups) == 1

    resp = client.post("/api/markers/pothole/click")
    assert resp.json() == {"state": "OPEN", "incident_id": "pothole"}
    assert len(engine.popups) == 1

    resp = client.post("/api/map/click")
    assert resp.json() == {"state": "CLOSED", "incident_id": None}
    assert engine.popups == {}

    assert client.post("/api/markers/unknown/click").status_code == 404


def test_api_layer_toggles(api) -> None:
    client, session, _, engine = api
    resp = client.post("/api/map/layers", json={"types": {"HAZARD": False}})
    body = resp.json()
    assert body["destroyed"] == ["pothole"]
    assert body["types"]["HAZARD"] is False

    resp = client.post("/api/map/layers", json={"visible": False})
    assert resp.json()["skipped"] is True
    assert engine.markers == {}
    assert engine.listener_count == 0

    resp = client.post("/api/map/layers", json={"visible": True})
    assert sorted(resp.json()["created"]) == ["closure", "crash"]
    assert session.layer.visible


def test_api_health(api) -> None:
    client, _, _, _ = api
    body = client.get("/api/health").json()
    assert body["subscribers"] == 0
    assert body["dropped_events"] == 0
    assert body["sources"][0]["source_id"] == "usgs_gauges"
    assert body["sources"][0]["consecutive_failures"] == 1


def test_format_event() -> None:
    assert format_event("marker.remove", {"handle": 3}) == 'event: marker.remove\ndata: {"handle":3}\n\n'
