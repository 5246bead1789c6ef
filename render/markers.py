from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass
from functools import partial
from types import MappingProxyType

from normalize.models import Incident, IncidentType
from render.elements import create_marker_element
from render.engine import ClickHandler, MapEngine, MarkerElement
from render.popup import PopupController
from render.zoom import visible_incidents


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarkerEntry:
    incident_id: str
    map_handle: Hashable
    dom_element: MarkerElement
    click_handler: ClickHandler


@dataclass(frozen=True)
class ReconcileResult:
    created: tuple[str, ...] = ()
    destroyed: tuple[str, ...] = ()
    kept: tuple[str, ...] = ()
    skipped: bool = False


class MarkerLayer:
    """Keeps the map's incident markers in step with the visible incident set.

    Each reconcile diffs by incident id: markers whose id left the visible set
    are destroyed (listener detached, marker removed), new ids get a fresh
    marker, and ids present on both sides keep their existing entry untouched.
    """

    def __init__(
        self,
        engine: MapEngine,
        popups: PopupController,
        *,
        element_factory: Callable[[Incident], MarkerElement] = create_marker_element,
    ) -> None:
        self._engine = engine
        self._popups = popups
        self._element_factory = element_factory
        self._entries: dict[str, MarkerEntry] = {}
        self._current: dict[str, Incident] = {}
        self._visible = True
        self._map_click_bound = False
        self.type_filters: dict[IncidentType, bool] = {t: True for t in IncidentType}

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def rendered_ids(self) -> frozenset[str]:
        return frozenset(self._entries)

    @property
    def entries(self) -> Mapping[str, MarkerEntry]:
        return MappingProxyType(self._entries)

    def reconcile(self, incidents: Iterable[Incident], zoom: float) -> ReconcileResult:
        if not self._visible:
            self.teardown()
            return ReconcileResult(skipped=True)
        if not self._engine.is_ready():
            logger.debug("map not ready; skipping marker reconcile")
            return ReconcileResult(skipped=True)

        self._bind_map_click()
        wanted = {i.id: i for i in visible_incidents(incidents, zoom, self.type_filters)}
        self._current = wanted

        destroyed = [iid for iid in self._entries if iid not in wanted]
        for iid in destroyed:
            self._destroy(iid)

        created: list[str] = []
        kept: list[str] = []
        for iid, incident in wanted.items():
            if iid in self._entries:
                kept.append(iid)
                continue
            self._entries[iid] = self._create(incident)
            created.append(iid)

        return ReconcileResult(
            created=tuple(created), destroyed=tuple(destroyed), kept=tuple(kept)
        )

    def set_visible(self, visible: bool) -> None:
        self._visible = visible
        if not visible:
            self.teardown()

    def set_type_filter(self, incident_type: IncidentType, enabled: bool) -> None:
        self.type_filters[incident_type] = enabled

    def teardown(self) -> None:
        for iid in list(self._entries):
            self._destroy(iid)
        self._current = {}
        self._popups.close()
        self._unbind_map_click()

    def _create(self, incident: Incident) -> MarkerEntry:
        element = self._element_factory(incident)
        handler = partial(self._open_by_id, incident.id)
        handle = self._engine.add_marker(
            (incident.location.lng, incident.location.lat), element
        )
        self._engine.on_click(element, handler)
        return MarkerEntry(
            incident_id=incident.id,
            map_handle=handle,
            dom_element=element,
            click_handler=handler,
        )

    def _open_by_id(self, incident_id: str) -> None:
        # Popups render the latest reconciled copy, not the one the marker was built from.
        incident = self._current.get(incident_id)
        if incident is not None:
            self._popups.open(incident)

    def _destroy(self, incident_id: str) -> None:
        entry = self._entries.pop(incident_id)
        self._engine.off_click(entry.dom_element, entry.click_handler)
        self._engine.remove_marker(entry.map_handle)
        self._popups.close_for(incident_id)

    def _bind_map_click(self) -> None:
        if not self._map_click_bound:
            self._engine.on_map_click(self._popups.handle_map_click)
            self._map_click_bound = True

    def _unbind_map_click(self) -> None:
        if self._map_click_bound:
            self._engine.off_map_click(self._popups.handle_map_click)
            self._map_click_bound = False
