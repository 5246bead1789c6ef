from __future__ import annotations

from collections.abc import Iterable, Mapping

from normalize.models import Incident, IncidentType, Severity
from normalize.normalize import derive_severity


__all__ = ["derive_severity", "is_visible", "visible_incidents"]

MEDIUM_ZOOM = 8
CLOSE_ZOOM = 10


def is_visible(incident: Incident, zoom: float) -> bool:
    # Reads the severity derived at normalization; never re-derives it.
    severity = incident.severity
    if zoom < MEDIUM_ZOOM:
        return severity is Severity.CRITICAL
    if zoom < CLOSE_ZOOM:
        return severity in (Severity.CRITICAL, Severity.MAJOR)
    return True


def visible_incidents(
    incidents: Iterable[Incident],
    zoom: float,
    type_filters: Mapping[IncidentType, bool] | None = None,
) -> list[Incident]:
    return [
        incident
        for incident in incidents
        if (type_filters is None or type_filters.get(incident.type, True))
        and is_visible(incident, zoom)
    ]
