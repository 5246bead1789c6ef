from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import dataclass
from datetime import datetime

from geo.coords_extract import micro_degrees_to_decimal
from ingest.parsers.timestamps import parse_timestamp
from normalize.models import CandidateRecord, IncidentType, SourceClass


logger = logging.getLogger(__name__)

# Attribute (or child) names on <type> that identify the event class.
_TYPE_NAMES: dict[str, IncidentType] = {
    "Construction": IncidentType.CONSTRUCTION,
    "RoadWork": IncidentType.CONSTRUCTION,
    "BridgeOut": IncidentType.CLOSURE,
    "BridgeMaintenance": IncidentType.CLOSURE,
    "Closure": IncidentType.CLOSURE,
    "RoadClosed": IncidentType.CLOSURE,
    "Accident": IncidentType.ACCIDENT,
    "Crash": IncidentType.ACCIDENT,
    "Flooding": IncidentType.FLOODING,
}

_TITLE_MAX = 100


@dataclass(frozen=True)
class XmlPoint:
    lat: float
    lng: float
    order: int = 0


@dataclass(frozen=True)
class XmlLocation:
    point: XmlPoint | None
    roadway: str | None
    city: str | None


def _text(parent: ET.Element | None, tag: str) -> str | None:
    if parent is None:
        return None
    value = parent.findtext(f"{{*}}{tag}")
    if value is None:
        return None
    value = value.strip()
    return value or None


def _read_point(el: ET.Element | None) -> XmlPoint | None:
    if el is None:
        return None
    lat = micro_degrees_to_decimal(_text(el, "lat"))
    lng = micro_degrees_to_decimal(_text(el, "lon"))
    if lat is None or lng is None:
        return None
    order_text = _text(el, "order")
    try:
        order = int(order_text) if order_text else 0
    except ValueError:
        order = 0
    return XmlPoint(lat=lat, lng=lng, order=order)


def _read_location(el: ET.Element | None) -> XmlLocation | None:
    if el is None:
        return None
    return XmlLocation(
        point=_read_point(el),
        roadway=_text(el, "roadway"),
        city=_text(el, "city"),
    )


def _route_geometry(element: ET.Element) -> dict | None:
    start = _read_point(element.find("{*}startLocation"))
    end = _read_point(element.find("{*}endLocation"))
    if start is None or end is None:
        return None

    midpoints: list[XmlPoint] = []
    container = element.find("{*}midpoints")
    if container is not None:
        for point_el in container.findall("{*}point"):
            point = _read_point(point_el)
            if point is not None:
                midpoints.append(point)
    midpoints.sort(key=lambda p: p.order)

    coords = [[p.lng, p.lat] for p in [start, *midpoints, end]]
    return {"type": "LineString", "coordinates": coords}


def _incident_type(element: ET.Element) -> IncidentType | None:
    type_el = element.find("{*}type")
    if type_el is None:
        return None
    names = list(type_el.attrib)
    names.extend(child.tag.rsplit("}", maxsplit=1)[-1] for child in type_el)
    for name in names:
        mapped = _TYPE_NAMES.get(name)
        if mapped is not None:
            return mapped
    text = (type_el.text or "").strip()
    return _TYPE_NAMES.get(text)


def _title(desc: str, fallback: str, *, truncate: bool) -> str:
    title = desc.split(".", maxsplit=1)[0].strip() or fallback
    if truncate and len(title) > _TITLE_MAX:
        title = title[: _TITLE_MAX - 3] + "..."
    return title


def _road_name(location: XmlLocation | None) -> str:
    roadway = location.roadway if location is not None else None
    city = location.city if location is not None else None
    return f"{roadway or 'Unknown Road'} in {city or 'Unknown City'}"


def _parse_element(
    element: ET.Element,
    *,
    kind: str,
    source: str,
    fallback_id: str,
) -> CandidateRecord | None:
    start_location = _read_location(element.find("{*}startLocation"))
    if start_location is None or start_location.point is None:
        return None

    desc = _text(element, "desc") or ""
    is_closure = kind == "closure"

    extra: dict[str, str] = {}
    lanes = _text(element, "affectedLanesDescription")
    if lanes:
        extra["affected_lanes"] = lanes
    restrictions = element.find("{*}roadRestrictions")
    for key in ("weight", "width"):
        value = _text(restrictions, key)
        if value:
            extra[f"restriction_{key}"] = value
    if is_closure and ("AM" in desc or "PM" in desc):
        extra["has_schedule"] = "true"

    type_hint = IncidentType.CONSTRUCTION if is_closure else _incident_type(element)

    return CandidateRecord(
        source=source,
        local_id=f"{kind}-{element.get('id') or fallback_id}",
        lat=start_location.point.lat,
        lng=start_location.point.lng,
        source_class=SourceClass.SCHEDULED if is_closure else SourceClass.LIVE,
        type_hint=type_hint,
        raw_severity=_text(element, "severity"),
        geometry=_route_geometry(element),
        start=parse_timestamp(_text(element, "createdTimestamp")),
        end=None,
        road_name=_road_name(start_location),
        title=_title(
            desc,
            "Construction" if is_closure else "Traffic Incident",
            truncate=is_closure,
        ),
        description=desc,
        extra=extra,
    )


def parse_vt511_xml(
    data: bytes,
    *,
    source: str,
    now: datetime,
    counter: Counter[str] | None = None,
) -> list[CandidateRecord]:
    """Parse a 511 C2C XML document holding <incident> and <laneClosure> elements.

    Elements without start coordinates are dropped. Elements that lack an
    ``id`` attribute get one derived from the tick time and their position so
    that reparsing the same payload at the same ``now`` is stable.
    """
    root = ET.fromstring(data)
    stamp = int(now.timestamp() * 1000)
    records: list[CandidateRecord] = []

    for kind, tag in (("incident", "incident"), ("closure", "laneClosure")):
        for index, element in enumerate(root.findall(f".//{{*}}{tag}")):
            try:
                record = _parse_element(
                    element,
                    kind=kind,
                    source=source,
                    fallback_id=f"{stamp}-{index}",
                )
            except (TypeError, ValueError) as exc:
                logger.debug("skipping malformed %s element: %s", tag, exc)
                if counter is not None:
                    counter["parse_error"] += 1
                continue
            if record is None:
                if counter is not None:
                    counter["missing_location"] += 1
                continue
            records.append(record)
    return records
