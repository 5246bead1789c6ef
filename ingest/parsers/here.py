from __future__ import annotations

import json
import logging
from collections import Counter

from ingest.parsers.timestamps import parse_timestamp
from normalize.models import CandidateRecord, SourceClass


logger = logging.getLogger(__name__)


def _number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coords(incident: dict) -> tuple[float, float] | None:
    location = incident.get("location") or {}
    links = (location.get("shape") or {}).get("links") or []
    for link in links:
        points = (link or {}).get("points") or []
        if points:
            point = points[len(points) // 2] or {}
            lat = _number(point.get("lat"))
            lng = _number(point.get("lng"))
            if lat is not None and lng is not None:
                return (lat, lng)

    coordinate = (location.get("description") or {}).get("coordinate") or {}
    lat = _number(coordinate.get("lat"))
    lng = _number(coordinate.get("lng"))
    if lat is not None and lng is not None:
        return (lat, lng)
    return None


def _route(incident: dict) -> dict | None:
    links = ((incident.get("location") or {}).get("shape") or {}).get("links") or []
    coords: list[list[float]] = []
    for link in links:
        for point in (link or {}).get("points") or []:
            lat = _number((point or {}).get("lat"))
            lng = _number((point or {}).get("lng"))
            if lat is not None and lng is not None:
                coords.append([lng, lat])
    if not coords:
        return None
    return {"type": "LineString", "coordinates": coords}


def _road_name(incident: dict, title: str) -> str:
    location = incident.get("location") or {}
    described = (location.get("description") or {}).get("value")
    if described:
        return str(described)
    links = (location.get("shape") or {}).get("links") or []
    if links:
        names = (links[0] or {}).get("names") or []
        if names and (names[0] or {}).get("value"):
            return str(names[0]["value"])
    if "on " in title or "at " in title:
        return title
    return "Unknown Road"


def parse_here_incidents(
    data: bytes,
    *,
    source: str,
    counter: Counter[str] | None = None,
) -> list[CandidateRecord]:
    doc = json.loads(data)
    if not isinstance(doc, dict):
        raise ValueError("traffic payload is not an object")

    records: list[CandidateRecord] = []
    for index, incident in enumerate(doc.get("results") or []):
        try:
            details = incident.get("incidentDetails") or {}
            coords = _coords(incident)
            if coords is None:
                if counter is not None:
                    counter["missing_location"] += 1
                continue
            title = str((details.get("description") or {}).get("value") or "")
            criticality = details.get("criticality")
            if isinstance(criticality, dict):
                criticality = criticality.get("description")
            lat, lng = coords
            record = CandidateRecord(
                source=source,
                local_id=str(details.get("id") or index),
                lat=lat,
                lng=lng,
                source_class=SourceClass.LIVE,
                raw_type=str(details.get("type") or "") or None,
                raw_severity=str(criticality) if criticality else None,
                geometry=_route(incident),
                start=parse_timestamp(details.get("startTime")),
                end=parse_timestamp(details.get("endTime")),
                road_name=_road_name(incident, title),
                title=title or "Traffic Incident",
                description=title,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("skipping malformed traffic incident: %s", exc)
            if counter is not None:
                counter["parse_error"] += 1
            continue
        records.append(record)
    return records
