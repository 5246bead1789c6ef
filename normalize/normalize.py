from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable

from geo.region import BoundingBox
from normalize.models import (
    CandidateRecord,
    Geometry,
    Incident,
    IncidentType,
    Location,
    Severity,
    Status,
    TimeWindow,
)


logger = logging.getLogger(__name__)

# Vendor / feed type words, matched case-insensitively.
TYPE_VOCABULARY: dict[str, IncidentType] = {
    "accident": IncidentType.ACCIDENT,
    "crash": IncidentType.ACCIDENT,
    "construction": IncidentType.CONSTRUCTION,
    "roadwork": IncidentType.CONSTRUCTION,
    "lanerestriction": IncidentType.CONSTRUCTION,
    "roadclosure": IncidentType.CLOSURE,
    "closure": IncidentType.CLOSURE,
    "bridgeout": IncidentType.CLOSURE,
    "flood": IncidentType.FLOODING,
    "flooding": IncidentType.FLOODING,
}
DEFAULT_TYPE = IncidentType.HAZARD

SEVERITY_VOCABULARY: dict[str, Severity] = {
    "low": Severity.MINOR,
    "lowimpact": Severity.MINOR,
    "minor": Severity.MINOR,
    "medium": Severity.MODERATE,
    "moderate": Severity.MODERATE,
    "high": Severity.MAJOR,
    "major": Severity.MAJOR,
    "critical": Severity.CRITICAL,
}
DEFAULT_SEVERITY = Severity.MINOR


def map_type(raw: str | None) -> IncidentType:
    if not raw:
        return DEFAULT_TYPE
    return TYPE_VOCABULARY.get(raw.strip().casefold(), DEFAULT_TYPE)


def map_severity(raw: str | None) -> Severity:
    if not raw:
        return DEFAULT_SEVERITY
    return SEVERITY_VOCABULARY.get(raw.strip().casefold(), DEFAULT_SEVERITY)


def derive_severity(incident_type: IncidentType) -> Severity:
    """Coarse bucket used for zoom culling; unrelated to feed-reported severity."""
    if incident_type is IncidentType.CLOSURE:
        return Severity.CRITICAL
    if incident_type in (IncidentType.ACCIDENT, IncidentType.FLOODING):
        return Severity.MAJOR
    if incident_type is IncidentType.CONSTRUCTION:
        return Severity.MODERATE
    return Severity.MINOR


def _position(value: object) -> tuple[float, float] | None:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    try:
        lng = float(value[0])
        lat = float(value[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lng) and math.isfinite(lat)):
        return None
    return (lng, lat)


def _positions(values: object) -> tuple[tuple[float, float], ...] | None:
    if not isinstance(values, (list, tuple)):
        return None
    out: list[tuple[float, float]] = []
    for value in values:
        pos = _position(value)
        if pos is None:
            return None
        out.append(pos)
    return tuple(out)


def _ring(values: object) -> tuple[tuple[float, float], ...] | None:
    ring = _positions(values)
    if ring is None or len(set(ring)) < 3:
        return None
    if ring[0] != ring[-1]:
        ring = ring + (ring[0],)
    return ring


def validate_geometry(geom: dict | None) -> Geometry | None:
    if not isinstance(geom, dict):
        return None
    geom_type = geom.get("type")
    coords = geom.get("coordinates")

    if geom_type == "LineString":
        line = _positions(coords)
        if line is None or len(line) < 2:
            return None
        return Geometry(type="LineString", coordinates=line)

    if geom_type == "Polygon":
        if not isinstance(coords, (list, tuple)) or not coords:
            return None
        outer = _ring(coords[0])
        if outer is None:
            return None
        holes = [r for r in (_ring(c) for c in coords[1:]) if r is not None]
        return Geometry(type="Polygon", coordinates=(outer, *holes))

    return None


def _to_incident(record: CandidateRecord) -> Incident:
    incident_type = record.type_hint or map_type(record.raw_type)
    lat = float(record.lat)  # type: ignore[arg-type]
    lng = float(record.lng)  # type: ignore[arg-type]
    return Incident(
        id=f"{record.source}-{record.local_id}",
        type=incident_type,
        severity=derive_severity(incident_type),
        reported_severity=map_severity(record.raw_severity),
        location=Location(lat=lat, lng=lng),
        geometry=validate_geometry(record.geometry),
        time_window=TimeWindow(start=record.start, end=record.end),
        status=Status.ACTIVE,
        source=record.source,
        source_class=record.source_class,
        road_name=record.road_name,
        title=record.title,
        description=record.description,
        details=tuple(sorted((str(k), str(v)) for k, v in record.extra.items())),
    )


def drop_duplicate_ids(
    incidents: Iterable[Incident], counter: Counter[str] | None = None
) -> list[Incident]:
    """Keep the first incident for each id; later ones are tallied as ``duplicate_id``."""
    kept: list[Incident] = []
    seen: set[str] = set()
    for incident in incidents:
        if incident.id in seen:
            if counter is not None:
                counter["duplicate_id"] += 1
            continue
        seen.add(incident.id)
        kept.append(incident)
    return kept


def normalize(
    records: Iterable[CandidateRecord],
    *,
    region: BoundingBox,
    counter: Counter[str] | None = None,
    dedupe: bool = True,
) -> list[Incident]:
    """Turn candidate records into canonical incidents, in input order.

    Out-of-region and malformed records are skipped and tallied in
    ``counter``; a bad geometry only clears the geometry. With ``dedupe``, a
    later record reusing an id already emitted in this batch is skipped.
    """
    if counter is None:
        counter = Counter()

    incidents: list[Incident] = []
    for record in records:
        if record.lat is None or record.lng is None:
            counter["missing_location"] += 1
            continue
        try:
            incident = _to_incident(record)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("dropping record %s-%s: %s", record.source, record.local_id, exc)
            counter["parse_error"] += 1
            continue

        if not region.contains(incident.location.lat, incident.location.lng):
            counter["out_of_region"] += 1
            continue
        if record.geometry is not None and incident.geometry is None:
            counter["geometry_dropped"] += 1
        incidents.append(incident)

    if dedupe:
        incidents = drop_duplicate_ids(incidents, counter)
    if counter:
        logger.debug("normalize: kept=%d rejected=%s", len(incidents), dict(counter))
    return incidents
