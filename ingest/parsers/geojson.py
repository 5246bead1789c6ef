from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from geo.coords_extract import representative_coords
from ingest.parsers.timestamps import parse_timestamp
from normalize.models import CandidateRecord, IncidentType, SourceClass


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropertyAliases:
    """Vendor property names to try, in order, for each canonical field."""

    local_id: Sequence[str] = ("OBJECTID", "id")
    title: Sequence[str] = ("ProjectName", "PROJECT_NAME", "name")
    description: Sequence[str] = ("Description", "DESCRIPTION", "description")
    start: Sequence[str] = ("StartDate", "START_DATE")
    end: Sequence[str] = ("EndDate", "END_DATE")
    road_name: Sequence[str] = ("RoadName", "ROAD_NAME", "Route")
    severity: Sequence[str] = ("Severity", "severity")


DEFAULT_ALIASES = PropertyAliases()


def _first(props: dict, names: Sequence[str]) -> object | None:
    for name in names:
        value = props.get(name)
        if value is not None and value != "":
            return value
    return None


def parse_geojson(data: bytes) -> list[dict]:
    doc = json.loads(data)
    if not isinstance(doc, dict) or doc.get("type") != "FeatureCollection":
        return []
    features = doc.get("features", [])
    return list(features)


def parse_feature_collection(
    data: bytes,
    *,
    source: str,
    incident_type: IncidentType = IncidentType.CONSTRUCTION,
    source_class: SourceClass = SourceClass.SCHEDULED,
    aliases: PropertyAliases = DEFAULT_ALIASES,
    default_title: str = "Road Work",
    counter: Counter[str] | None = None,
) -> list[CandidateRecord]:
    records: list[CandidateRecord] = []
    for index, feature in enumerate(parse_geojson(data)):
        try:
            props = feature.get("properties") or {}
            geometry = feature.get("geometry")
            coords = representative_coords(geometry)
            if coords is None:
                if counter is not None:
                    counter["missing_location"] += 1
                continue
            lat, lng = coords
            local_id = _first(props, aliases.local_id)
            if local_id is None:
                local_id = feature.get("id")
            description = str(_first(props, aliases.description) or "")
            severity = _first(props, aliases.severity)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("skipping malformed feature: %s", exc)
            if counter is not None:
                counter["parse_error"] += 1
            continue

        records.append(
            CandidateRecord(
                source=source,
                local_id=str(local_id if local_id is not None else index),
                lat=lat,
                lng=lng,
                source_class=source_class,
                type_hint=incident_type,
                raw_severity=str(severity) if severity is not None else None,
                geometry=geometry,
                start=parse_timestamp(_first(props, aliases.start)),
                end=parse_timestamp(_first(props, aliases.end)),
                road_name=str(_first(props, aliases.road_name) or "Unknown Road"),
                title=str(_first(props, aliases.title) or default_title),
                description=description,
            )
        )
    return records
