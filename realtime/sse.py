from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from starlette.responses import StreamingResponse

from realtime.bus import EventBus


router = APIRouter()

HEARTBEAT_SECONDS = 15


def format_event(event_type: str, data: object) -> str:
    payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return f"event: {event_type}\ndata: {payload}\n\n"


def _snapshot(request: Request) -> dict:
    refresher = getattr(request.app.state, "refresher", None)
    if refresher is None:
        return {"incidents": [], "loading": False, "last_error": None}
    return {
        "incidents": [i.to_dict() for i in refresher.incidents],
        "loading": refresher.loading,
        "last_error": refresher.last_error,
    }


@router.get("/sse")
async def sse(request: Request) -> StreamingResponse:
    """Stream map events; a new subscriber first receives the current incidents."""
    bus: EventBus = request.app.state.bus
    queue = await bus.subscribe()

    async def event_stream():
        try:
            yield format_event("incidents.snapshot", _snapshot(request))
            while True:
                if await request.is_disconnected():
                    return
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    ts = datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")
                    yield format_event("heartbeat", {"ts": ts})
                    continue
                yield format_event(event.type, event.data)
        finally:
            await bus.unsubscribe(queue)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
