from __future__ import annotations

import math


def micro_degrees_to_decimal(value: str | None) -> float | None:
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return number / 1_000_000


def _lng_lat(position: object) -> tuple[float, float] | None:
    if not isinstance(position, (list, tuple)) or len(position) < 2:
        return None
    try:
        lng = float(position[0])
        lat = float(position[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return (lat, lng)


def _middle(positions: object) -> tuple[float, float] | None:
    if not isinstance(positions, (list, tuple)) or not positions:
        return None
    return _lng_lat(positions[len(positions) // 2])


def representative_coords(geom: dict | None) -> tuple[float, float] | None:
    """Pick a marker position for a GeoJSON geometry.

    Points are used as-is, lines and multipoints use their middle vertex,
    polygons use the middle vertex of their outer ring. This is not a true
    centroid, only a stable on-geometry anchor for a marker.
    """
    if not isinstance(geom, dict):
        return None
    geom_type = geom.get("type")
    coords = geom.get("coordinates")
    if coords is None:
        return None

    if geom_type == "Point":
        return _lng_lat(coords)
    if geom_type in ("LineString", "MultiPoint"):
        return _middle(coords)
    if geom_type in ("Polygon", "MultiLineString"):
        if not isinstance(coords, (list, tuple)) or not coords:
            return None
        return _middle(coords[0])
    return None
