from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.logging_setup import configure_logging
from app.settings import Settings
from health.health import HealthRegistry
from ingest.cache import FeedCache
from ingest.scheduler import IncidentRefresher
from normalize.models import IncidentType
from realtime.bus import EventBus
from realtime.sse import router as sse_router
from render.engine import BusMapEngine
from render.session import MapSession


logger = logging.getLogger(__name__)


class ZoomBody(BaseModel):
    zoom: float


class LayerBody(BaseModel):
    visible: bool | None = None
    types: dict[IncidentType, bool] = {}


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    configure_logging(settings.log_level)
    bus = EventBus()
    session = MapSession(BusMapEngine(bus), zoom=settings.initial_zoom)
    health = HealthRegistry()
    client = httpx.AsyncClient(follow_redirects=True)
    refresher = IncidentRefresher(
        settings=settings,
        client=client,
        bus=bus,
        health=health,
        cache=FeedCache(),
        on_publish=session.update_incidents,
    )
    app.state.settings = settings
    app.state.bus = bus
    app.state.session = session
    app.state.health = health
    app.state.refresher = refresher

    logger.info("starting with %d feeds", len(refresher.plugins))
    refresher.start()
    try:
        yield
    finally:
        await refresher.stop()
        session.close()
        await client.aclose()


app = FastAPI(lifespan=lifespan)
app.include_router(sse_router)


def _bad_zoom(zoom: float) -> JSONResponse:
    return JSONResponse({"error": "invalid_zoom", "zoom": str(zoom)}, status_code=400)


def _popup_state(session: MapSession) -> dict:
    return {
        "state": session.popups.state.value,
        "incident_id": session.popups.active_incident_id,
    }


@app.get("/api/incidents")
def api_incidents(request: Request) -> JSONResponse:
    refresher: IncidentRefresher = request.app.state.refresher
    return JSONResponse(
        {
            "incidents": [i.to_dict() for i in refresher.incidents],
            "loading": refresher.loading,
            "last_error": refresher.last_error,
            "last_updated": _iso(refresher.last_updated),
            "rejections": refresher.last_rejections,
        }
    )


@app.get("/api/incidents/visible")
def api_visible_incidents(request: Request, zoom: float | None = None) -> JSONResponse:
    session: MapSession = request.app.state.session
    if zoom is None:
        return JSONResponse([i.to_dict() for i in session.visible()])
    try:
        probe = session.visible_at(zoom)
    except ValueError:
        return _bad_zoom(zoom)
    return JSONResponse([i.to_dict() for i in probe])


@app.post("/api/incidents/refresh", status_code=202)
async def api_refresh(request: Request) -> JSONResponse:
    refresher: IncidentRefresher = request.app.state.refresher
    refresher.request_refresh()
    return JSONResponse({"status": "refreshing"}, status_code=202)


@app.post("/api/map/zoom")
async def api_map_zoom(request: Request, body: ZoomBody) -> JSONResponse:
    session: MapSession = request.app.state.session
    try:
        result = session.set_zoom(body.zoom)
    except ValueError:
        return _bad_zoom(body.zoom)
    return JSONResponse({"zoom": session.zoom, **asdict(result)})


@app.post("/api/map/layers")
async def api_map_layers(request: Request, body: LayerBody) -> JSONResponse:
    session: MapSession = request.app.state.session
    for incident_type, enabled in body.types.items():
        session.layer.set_type_filter(incident_type, enabled)
    if body.visible is not None:
        session.layer.set_visible(body.visible)
    result = session.refresh_markers()
    return JSONResponse(
        {
            "visible": session.layer.visible,
            "types": {t.value: on for t, on in session.layer.type_filters.items()},
            **asdict(result),
        }
    )


@app.post("/api/markers/{incident_id}/click")
async def api_marker_click(request: Request, incident_id: str) -> JSONResponse:
    session: MapSession = request.app.state.session
    if not session.click_marker(incident_id):
        return JSONResponse({"error": "not_found"}, status_code=404)
    return JSONResponse(_popup_state(session))


@app.post("/api/map/click")
async def api_map_click(request: Request) -> JSONResponse:
    session: MapSession = request.app.state.session
    session.click_map()
    return JSONResponse(_popup_state(session))


@app.get("/api/health")
def api_health(request: Request) -> JSONResponse:
    health: HealthRegistry = request.app.state.health
    bus: EventBus = request.app.state.bus
    return JSONResponse(
        {
            "sources": health.snapshot(),
            "subscribers": bus.subscriber_count,
            "dropped_events": bus.dropped,
        }
    )
