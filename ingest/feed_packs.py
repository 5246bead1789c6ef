from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ingest.parsers.geojson import DEFAULT_ALIASES, PropertyAliases
from normalize.models import IncidentType, SourceClass


_ALIAS_FIELDS = (
    "local_id",
    "title",
    "description",
    "start",
    "end",
    "road_name",
    "severity",
)


@dataclass(frozen=True)
class FeedPackEntry:
    pack_id: str
    source_id: str
    name: str
    url: str
    incident_type: IncidentType
    source_class: SourceClass
    default_title: str = "Road Work"
    aliases: PropertyAliases = field(default=DEFAULT_ALIASES)
    enabled: bool = True


def _aliases(raw: object, path: Path) -> PropertyAliases:
    if raw is None:
        return DEFAULT_ALIASES
    if not isinstance(raw, dict):
        raise ValueError(f"invalid properties mapping in: {path}")
    overrides: dict[str, tuple[str, ...]] = {}
    for key, names in raw.items():
        if key not in _ALIAS_FIELDS:
            raise ValueError(f"unknown property field {key!r} in: {path}")
        if isinstance(names, str):
            names = [names]
        overrides[key] = tuple(str(n) for n in names)
    return PropertyAliases(
        **{name: overrides.get(name, getattr(DEFAULT_ALIASES, name)) for name in _ALIAS_FIELDS}
    )


def load_feed_pack_entries(feeds_dir: Path) -> dict[str, list[FeedPackEntry]]:
    """Read ``*.yaml`` feed packs describing extra GeoJSON feature feeds."""
    packs: dict[str, list[FeedPackEntry]] = {}
    if not feeds_dir.exists():
        return packs

    for path in sorted(feeds_dir.glob("*.yaml")):
        pack_id = path.stem
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            packs[pack_id] = []
            continue
        if not isinstance(raw, list):
            raise ValueError(f"invalid feed pack: {path}")

        entries: list[FeedPackEntry] = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ValueError(f"invalid feed entry in: {path}")
            try:
                incident_type = IncidentType(str(entry.get("incident_type") or "CONSTRUCTION").upper())
                source_class = SourceClass(str(entry.get("source_class") or "scheduled").lower())
            except ValueError as exc:
                raise ValueError(f"invalid feed entry in: {path}: {exc}") from exc
            entries.append(
                FeedPackEntry(
                    pack_id=pack_id,
                    source_id=str(entry["id"]),
                    name=str(entry["name"]),
                    url=str(entry["url"]),
                    incident_type=incident_type,
                    source_class=source_class,
                    default_title=str(entry.get("default_title") or "Road Work"),
                    aliases=_aliases(entry.get("properties"), path),
                    enabled=bool(entry.get("enabled", True)),
                )
            )

        packs[pack_id] = entries

    return packs
