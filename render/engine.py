from __future__ import annotations

import itertools
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Protocol

from realtime.bus import Event, EventBus


LngLat = tuple[float, float]
ClickHandler = Callable[[], object]


@dataclass(eq=False)
class MarkerElement:
    """Stand-in for the marker's DOM node; identity is the node."""

    incident_id: str
    data_type: str
    class_name: str = "incident-marker"
    style: dict[str, str] = field(default_factory=dict)
    icon: str = ""
    attached: bool = False


class MapEngine(Protocol):
    def is_ready(self) -> bool: ...

    def add_marker(self, lng_lat: LngLat, element: MarkerElement) -> Hashable: ...

    def remove_marker(self, handle: Hashable) -> None: ...

    def on_click(self, element: MarkerElement, handler: ClickHandler) -> None: ...

    def off_click(self, element: MarkerElement, handler: ClickHandler) -> None: ...

    def on_map_click(self, handler: ClickHandler) -> None: ...

    def off_map_click(self, handler: ClickHandler) -> None: ...

    def open_popup(self, lng_lat: LngLat, html: str) -> Hashable: ...

    def close_popup(self, handle: Hashable) -> None: ...


class InMemoryMapEngine:
    """Map engine that keeps its markers, listeners and popups in dicts.

    Serves as the server-side mirror of the browser map and as the test double.
    Marker clicks do not propagate to map-background handlers.
    """

    def __init__(self, *, ready: bool = True) -> None:
        self.ready = ready
        self._ids = itertools.count(1)
        self.markers: dict[int, tuple[LngLat, MarkerElement]] = {}
        self.listeners: dict[MarkerElement, list[ClickHandler]] = {}
        self.map_click_handlers: list[ClickHandler] = []
        self.popups: dict[int, tuple[LngLat, str]] = {}

    def is_ready(self) -> bool:
        return self.ready

    def add_marker(self, lng_lat: LngLat, element: MarkerElement) -> int:
        handle = next(self._ids)
        self.markers[handle] = (lng_lat, element)
        element.attached = True
        return handle

    def remove_marker(self, handle: Hashable) -> None:
        removed = self.markers.pop(handle, None)  # type: ignore[arg-type]
        if removed is not None:
            removed[1].attached = False

    def on_click(self, element: MarkerElement, handler: ClickHandler) -> None:
        self.listeners.setdefault(element, []).append(handler)

    def off_click(self, element: MarkerElement, handler: ClickHandler) -> None:
        handlers = self.listeners.get(element)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self.listeners[element]

    def on_map_click(self, handler: ClickHandler) -> None:
        self.map_click_handlers.append(handler)

    def off_map_click(self, handler: ClickHandler) -> None:
        if handler in self.map_click_handlers:
            self.map_click_handlers.remove(handler)

    def open_popup(self, lng_lat: LngLat, html: str) -> int:
        handle = next(self._ids)
        self.popups[handle] = (lng_lat, html)
        return handle

    def close_popup(self, handle: Hashable) -> None:
        self.popups.pop(handle, None)  # type: ignore[arg-type]

    @property
    def listener_count(self) -> int:
        return sum(len(h) for h in self.listeners.values())

    def element_for(self, incident_id: str) -> MarkerElement | None:
        for _, element in self.markers.values():
            if element.incident_id == incident_id:
                return element
        return None

    def click_marker(self, element: MarkerElement) -> None:
        for handler in list(self.listeners.get(element, ())):
            handler()

    def click_map(self) -> None:
        for handler in list(self.map_click_handlers):
            handler()


class BusMapEngine(InMemoryMapEngine):
    """Mirror engine that also streams marker and popup changes to browsers."""

    def __init__(self, bus: EventBus, *, ready: bool = True) -> None:
        super().__init__(ready=ready)
        self._bus = bus

    def add_marker(self, lng_lat: LngLat, element: MarkerElement) -> int:
        handle = super().add_marker(lng_lat, element)
        self._bus.publish_nowait(
            Event(
                type="marker.add",
                data={
                    "handle": handle,
                    "incident_id": element.incident_id,
                    "type": element.data_type,
                    "lng_lat": list(lng_lat),
                    "style": dict(element.style),
                },
            )
        )
        return handle

    def remove_marker(self, handle: Hashable) -> None:
        known = handle in self.markers
        super().remove_marker(handle)
        if known:
            self._bus.publish_nowait(Event(type="marker.remove", data={"handle": handle}))

    def open_popup(self, lng_lat: LngLat, html: str) -> int:
        handle = super().open_popup(lng_lat, html)
        self._bus.publish_nowait(
            Event(
                type="popup.open",
                data={"handle": handle, "lng_lat": list(lng_lat), "html": html},
            )
        )
        return handle

    def close_popup(self, handle: Hashable) -> None:
        known = handle in self.popups
        super().close_popup(handle)
        if known:
            self._bus.publish_nowait(Event(type="popup.close", data={"handle": handle}))
