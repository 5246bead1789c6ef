from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum


class IncidentType(str, Enum):
    ACCIDENT = "ACCIDENT"
    CONSTRUCTION = "CONSTRUCTION"
    CLOSURE = "CLOSURE"
    FLOODING = "FLOODING"
    HAZARD = "HAZARD"


class Severity(str, Enum):
    MINOR = "MINOR"
    MODERATE = "MODERATE"
    MAJOR = "MAJOR"
    CRITICAL = "CRITICAL"


class Status(str, Enum):
    UPCOMING = "UPCOMING"
    ACTIVE = "ACTIVE"
    ENDING = "ENDING"
    EXPIRED = "EXPIRED"


class SourceClass(str, Enum):
    """Reporting domain of a feed, used to pick temporal windows."""

    LIVE = "live"
    SCHEDULED = "scheduled"


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float


@dataclass(frozen=True)
class Geometry:
    type: str
    coordinates: tuple

    def to_geojson(self) -> dict:
        if self.type == "LineString":
            return {
                "type": "LineString",
                "coordinates": [[lng, lat] for lng, lat in self.coordinates],
            }
        return {
            "type": "Polygon",
            "coordinates": [
                [[lng, lat] for lng, lat in ring] for ring in self.coordinates
            ],
        }


@dataclass(frozen=True)
class TimeWindow:
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class CandidateRecord:
    """A feed record in the shape every parser emits, before validation."""

    source: str
    local_id: str
    lat: float | None
    lng: float | None
    source_class: SourceClass = SourceClass.LIVE
    type_hint: IncidentType | None = None
    raw_type: str | None = None
    raw_severity: str | None = None
    geometry: dict | None = None
    start: datetime | None = None
    end: datetime | None = None
    road_name: str = ""
    title: str = ""
    description: str = ""
    extra: dict = field(default_factory=dict)


def _iso(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.astimezone(tz=UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Incident:
    id: str
    type: IncidentType
    severity: Severity
    location: Location
    status: Status
    source: str
    source_class: SourceClass = SourceClass.LIVE
    reported_severity: Severity = Severity.MINOR
    geometry: Geometry | None = None
    time_window: TimeWindow = TimeWindow()
    road_name: str = ""
    title: str = ""
    description: str = ""
    details: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "reported_severity": self.reported_severity.value,
            "status": self.status.value,
            "location": {"lat": self.location.lat, "lng": self.location.lng},
            "geometry": self.geometry.to_geojson() if self.geometry else None,
            "start": _iso(self.time_window.start),
            "end": _iso(self.time_window.end),
            "road_name": self.road_name,
            "title": self.title,
            "description": self.description,
            "source": self.source,
            "source_class": self.source_class.value,
            "details": dict(self.details),
        }
