from __future__ import annotations

from normalize.models import Incident, IncidentType
from render.engine import MarkerElement


ICON_NAMES: dict[IncidentType, str] = {
    IncidentType.ACCIDENT: "alert-triangle",
    IncidentType.CONSTRUCTION: "hard-hat",
    IncidentType.CLOSURE: "ban",
    IncidentType.FLOODING: "waves",
    IncidentType.HAZARD: "alert-octagon",
}

MARKER_COLORS: dict[IncidentType, str] = {
    IncidentType.ACCIDENT: "#cc6652",
    IncidentType.CONSTRUCTION: "#daa520",
    IncidentType.CLOSURE: "#db7093",
    IncidentType.FLOODING: "#489d99",
    IncidentType.HAZARD: "#d67e2c",
}


def create_marker_element(incident: Incident) -> MarkerElement:
    return MarkerElement(
        incident_id=incident.id,
        data_type=incident.type.value.lower(),
        style={
            "background": MARKER_COLORS.get(incident.type, MARKER_COLORS[IncidentType.HAZARD]),
            "border": "3px solid #ffffff",
        },
        icon=ICON_NAMES.get(incident.type, "alert-octagon"),
    )
