from pathlib import Path

import pytest

from ingest.feed_packs import load_feed_pack_entries
from ingest.parsers.geojson import DEFAULT_ALIASES
from ingest.scheduler import feed_pack_sources
from normalize.models import IncidentType, SourceClass


REPO_FEEDS = Path(__file__).resolve().parents[1] / "feeds"


def test_shipped_feed_pack_loads() -> None:
    packs = load_feed_pack_entries(REPO_FEEDS)
    entries = packs["vermont"]
    assert [e.source_id for e in entries] == ["vtrans"]
    vtrans = entries[0]
    assert vtrans.incident_type is IncidentType.CONSTRUCTION
    assert vtrans.source_class is SourceClass.SCHEDULED
    assert vtrans.aliases.local_id == ("OBJECTID",)
    assert vtrans.aliases.severity == DEFAULT_ALIASES.severity


def test_feed_pack_defaults_and_string_aliases(tmp_path: Path) -> None:
    (tmp_path / "extra.yaml").write_text(
        "- id: town\n"
        "  name: Town works\n"
        "  url: https://town.test/works.geojson\n"
        "  incident_type: closure\n"
        "  source_class: LIVE\n"
        "  enabled: false\n"
        "  properties:\n"
        "    title: WORK_NAME\n",
        encoding="utf-8",
    )
    (tmp_path / "empty.yaml").write_text("", encoding="utf-8")

    packs = load_feed_pack_entries(tmp_path)
    assert packs["empty"] == []
    town = packs["extra"][0]
    assert town.incident_type is IncidentType.CLOSURE
    assert town.source_class is SourceClass.LIVE
    assert not town.enabled
    assert town.default_title == "Road Work"
    assert town.aliases.title == ("WORK_NAME",)

    plugins = feed_pack_sources(tmp_path)
    assert [(p.source_id, p.enabled) for p in plugins] == [("town", False)]


def test_feed_pack_rejects_unknown_property_field(tmp_path: Path) -> None:
    (tmp_path / "bad.yaml").write_text(
        "- id: x\n  name: x\n  url: https://x.test\n  properties:\n    colour: RED\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError):
        load_feed_pack_entries(tmp_path)


def test_feed_pack_rejects_non_list(tmp_path: Path) -> None:
    (tmp_path / "bad.yaml").write_text("id: x\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_feed_pack_entries(tmp_path)


def test_missing_feeds_dir_is_empty(tmp_path: Path) -> None:
    assert load_feed_pack_entries(tmp_path / "nope") == {}
