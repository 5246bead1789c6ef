from __future__ import annotations

import math
from collections.abc import Sequence

from normalize.models import Incident
from render.engine import InMemoryMapEngine
from render.markers import MarkerLayer, ReconcileResult
from render.popup import PopupController
from render.zoom import visible_incidents


MIN_ZOOM = 0.0
MAX_ZOOM = 24.0


class MapSession:
    """Current incidents and zoom for one map, with its marker layer and popup."""

    def __init__(self, engine: InMemoryMapEngine, *, zoom: float) -> None:
        self.engine = engine
        self.popups = PopupController(engine)
        self.layer = MarkerLayer(engine, self.popups)
        self._incidents: list[Incident] = []
        self.zoom = _check_zoom(zoom)

    @property
    def incidents(self) -> Sequence[Incident]:
        return tuple(self._incidents)

    def visible(self) -> list[Incident]:
        return visible_incidents(self._incidents, self.zoom, self.layer.type_filters)

    def visible_at(self, zoom: float) -> list[Incident]:
        return visible_incidents(self._incidents, _check_zoom(zoom), self.layer.type_filters)

    def update_incidents(self, incidents: Sequence[Incident]) -> ReconcileResult:
        self._incidents = list(incidents)
        return self.layer.reconcile(self._incidents, self.zoom)

    def set_zoom(self, zoom: float) -> ReconcileResult:
        self.zoom = _check_zoom(zoom)
        return self.layer.reconcile(self._incidents, self.zoom)

    def refresh_markers(self) -> ReconcileResult:
        return self.layer.reconcile(self._incidents, self.zoom)

    def click_marker(self, incident_id: str) -> bool:
        element = self.engine.element_for(incident_id)
        if element is None:
            return False
        self.engine.click_marker(element)
        return True

    def click_map(self) -> None:
        self.engine.click_map()

    def close(self) -> None:
        self.layer.teardown()


def _check_zoom(zoom: float) -> float:
    zoom = float(zoom)
    if not math.isfinite(zoom) or not (MIN_ZOOM <= zoom <= MAX_ZOOM):
        raise ValueError(f"zoom out of range: {zoom}")
    return zoom
