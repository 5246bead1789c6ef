from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
from enum import Enum

from normalize.models import Incident
from render.engine import MapEngine
from render.popup_html import build_popup_html


class PopupState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"


@dataclass(frozen=True)
class ActivePopup:
    incident_id: str
    handle: Hashable


class PopupController:
    """Owns the single popup slot.

    ``open`` on the incident that is already showing closes it (toggle);
    ``open`` on any other incident closes the current popup before the new one
    is created, so two popups never coexist.
    """

    def __init__(
        self,
        engine: MapEngine,
        *,
        render_html: Callable[[Incident], str] = build_popup_html,
    ) -> None:
        self._engine = engine
        self._render_html = render_html
        self._active: ActivePopup | None = None

    @property
    def state(self) -> PopupState:
        return PopupState.CLOSED if self._active is None else PopupState.OPEN

    @property
    def active_incident_id(self) -> str | None:
        return self._active.incident_id if self._active is not None else None

    def open(self, incident: Incident) -> bool:
        previous = self._active
        if previous is not None:
            self.close()
            if previous.incident_id == incident.id:
                return False

        handle = self._engine.open_popup(
            (incident.location.lng, incident.location.lat),
            self._render_html(incident),
        )
        self._active = ActivePopup(incident_id=incident.id, handle=handle)
        return True

    def close(self) -> None:
        active = self._active
        if active is None:
            return
        self._active = None
        self._engine.close_popup(active.handle)

    def close_for(self, incident_id: str) -> None:
        if self._active is not None and self._active.incident_id == incident_id:
            self.close()

    def handle_map_click(self) -> None:
        self.close()
