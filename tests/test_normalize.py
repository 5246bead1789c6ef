from collections import Counter
from datetime import UTC, datetime, timedelta
from pathlib import Path

from geo.region import VERMONT
from ingest.parsers.xml import parse_vt511_xml
from normalize.models import CandidateRecord, IncidentType, Severity, SourceClass, Status
from normalize.normalize import map_severity, map_type, normalize, validate_geometry
from normalize.pipeline import run_pipeline


FIXTURES = Path(__file__).resolve().parent / "fixtures"
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _record(local_id: str, lat: float | None = 44.0, lng: float | None = -72.7, **kwargs) -> CandidateRecord:
    return CandidateRecord(source="test", local_id=local_id, lat=lat, lng=lng, **kwargs)


def test_map_type_and_severity_vocabulary() -> None:
    assert map_type("Accident") is IncidentType.ACCIDENT
    assert map_type("ROADCLOSURE") is IncidentType.CLOSURE
    assert map_type("laneRestriction") is IncidentType.CONSTRUCTION
    assert map_type("alien landing") is IncidentType.HAZARD
    assert map_type(None) is IncidentType.HAZARD
    assert map_severity("Low") is Severity.MINOR
    assert map_severity("Medium") is Severity.MODERATE
    assert map_severity("high") is Severity.MAJOR
    assert map_severity("extreme") is Severity.MINOR


def test_normalize_rejects_out_of_region_and_zero_coords() -> None:
    counter: Counter[str] = Counter()
    incidents = normalize(
        [
            _record("inside"),
            _record("boston", lat=42.36, lng=-71.06),
            _record("null-island", lat=0.0, lng=0.0),
            _record("nan", lat=float("nan"), lng=-72.7),
            _record("missing", lat=None),
        ],
        region=VERMONT,
        counter=counter,
    )
    assert [i.id for i in incidents] == ["test-inside"]
    assert counter["out_of_region"] == 3
    assert counter["missing_location"] == 1


def test_normalize_derives_severity_from_type() -> None:
    incidents = normalize(
        [
            _record("a", type_hint=IncidentType.CLOSURE, raw_severity="Low"),
            _record("b", raw_type="crash", raw_severity="High"),
            _record("c", raw_type="roadwork"),
            _record("d", raw_type="pothole"),
        ],
        region=VERMONT,
    )
    assert [(i.type, i.severity) for i in incidents] == [
        (IncidentType.CLOSURE, Severity.CRITICAL),
        (IncidentType.ACCIDENT, Severity.MAJOR),
        (IncidentType.CONSTRUCTION, Severity.MODERATE),
        (IncidentType.HAZARD, Severity.MINOR),
    ]
    assert incidents[0].reported_severity is Severity.MINOR
    assert incidents[1].reported_severity is Severity.MAJOR


def test_normalize_skips_duplicate_ids() -> None:
    counter: Counter[str] = Counter()
    incidents = normalize(
        [_record("same", title="first"), _record("same", title="second")],
        region=VERMONT,
        counter=counter,
    )
    assert [i.title for i in incidents] == ["first"]
    assert counter["duplicate_id"] == 1


def test_normalize_drops_bad_geometry_but_keeps_incident() -> None:
    counter: Counter[str] = Counter()
    incidents = normalize(
        [_record("line", geometry={"type": "LineString", "coordinates": [[-72.7, 44.0]]})],
        region=VERMONT,
        counter=counter,
    )
    assert len(incidents) == 1
    assert incidents[0].geometry is None
    assert counter["geometry_dropped"] == 1


def test_validate_geometry_closes_polygon_rings() -> None:
    geometry = validate_geometry(
        {
            "type": "Polygon",
            "coordinates": [
                [[-72.0, 44.0], [-72.1, 44.0], [-72.1, 44.1]],
                [[-72.05, 44.05], [-72.05, 44.05]],
            ],
        }
    )
    assert geometry is not None
    assert geometry.coordinates == (
        ((-72.0, 44.0), (-72.1, 44.0), (-72.1, 44.1), (-72.0, 44.0)),
    )
    assert validate_geometry({"type": "Point", "coordinates": [-72.0, 44.0]}) is None
    assert validate_geometry({"type": "LineString", "coordinates": [[-72.0, "x"], [-72.1, 44.0]]}) is None


def test_pipeline_is_idempotent_for_same_input_and_time() -> None:
    data = (FIXTURES / "vt511_incidents.xml").read_bytes()
    batches = [parse_vt511_xml(data, source="vt511", now=NOW)]
    first = run_pipeline(batches, now=NOW, region=VERMONT)
    second = run_pipeline(
        [parse_vt511_xml(data, source="vt511", now=NOW)], now=NOW, region=VERMONT
    )
    assert first == second
    assert [i.id for i in first] == [
        "vt511-incident-9001",
        "vt511-incident-9002",
        f"vt511-closure-{int(NOW.timestamp() * 1000)}-0",
    ]


def test_pipeline_single_active_incident() -> None:
    records = [_record("e2e", raw_type="crash", start=NOW - timedelta(hours=1))]
    incidents = run_pipeline([records], now=NOW, region=VERMONT)
    assert len(incidents) == 1
    assert incidents[0].status is Status.ACTIVE
    assert incidents[0].source_class is SourceClass.LIVE


def test_incident_to_dict() -> None:
    records = [
        _record(
            "json",
            raw_type="crash",
            start=NOW,
            geometry={"type": "LineString", "coordinates": [[-72.7, 44.0], [-72.6, 44.1]]},
            extra={"affected_lanes": "Left lane"},
        )
    ]
    incident = run_pipeline([records], now=NOW, region=VERMONT)[0]
    data = incident.to_dict()
    assert data["id"] == "test-json"
    assert data["type"] == "ACCIDENT"
    assert data["start"] == "2026-03-10T12:00:00Z"
    assert data["end"] is None
    assert data["geometry"] == {
        "type": "LineString",
        "coordinates": [[-72.7, 44.0], [-72.6, 44.1]],
    }
    assert data["details"] == {"affected_lanes": "Left lane"}


def test_pipeline_prefers_live_record_over_expired_duplicate() -> None:
    counter: Counter[str] = Counter()
    records = [
        _record("same", title="old closure", end=NOW - timedelta(days=3)),
        _record("same", title="current closure", start=NOW - timedelta(hours=1)),
        _record("same", title="repeat", start=NOW - timedelta(hours=2)),
    ]
    incidents = run_pipeline([records], now=NOW, region=VERMONT, counter=counter)
    assert [i.title for i in incidents] == ["current closure"]
    assert counter["duplicate_id"] == 1
