from datetime import UTC, datetime, timedelta

from normalize.models import Incident, IncidentType, Location, Severity, SourceClass, Status, TimeWindow
from normalize.temporal import LIVE_TRAFFIC, SCHEDULED_WORK, TemporalPolicy, classify, tag_status


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _policy(grace_minutes: int) -> TemporalPolicy:
    return TemporalPolicy(look_ahead=timedelta(hours=24), grace=timedelta(minutes=grace_minutes))


def _incident(iid: str, window: TimeWindow, source_class: SourceClass = SourceClass.LIVE) -> Incident:
    return Incident(
        id=iid,
        type=IncidentType.HAZARD,
        severity=Severity.MINOR,
        location=Location(lat=44.0, lng=-72.7),
        status=Status.ACTIVE,
        source="test",
        source_class=source_class,
        time_window=window,
    )


def test_open_window_is_active() -> None:
    assert classify(TimeWindow(), NOW, LIVE_TRAFFIC) is Status.ACTIVE
    assert classify(TimeWindow(start=NOW - timedelta(hours=1)), NOW, LIVE_TRAFFIC) is Status.ACTIVE
    assert classify(TimeWindow(end=NOW + timedelta(hours=1)), NOW, LIVE_TRAFFIC) is Status.ACTIVE


def test_ended_within_grace_is_ending() -> None:
    window = TimeWindow(start=NOW - timedelta(hours=2), end=NOW - timedelta(minutes=20))
    assert classify(window, NOW, _policy(30)) is Status.ENDING


def test_ended_past_grace_is_expired() -> None:
    window = TimeWindow(start=NOW - timedelta(hours=2), end=NOW - timedelta(minutes=45))
    assert classify(window, NOW, _policy(30)) is Status.EXPIRED
    assert classify(window, NOW, _policy(10)) is Status.EXPIRED


def test_future_start_inside_look_ahead_is_upcoming() -> None:
    window = TimeWindow(start=NOW + timedelta(hours=3))
    assert classify(window, NOW, LIVE_TRAFFIC) is Status.UPCOMING


def test_future_start_beyond_look_ahead_is_not_surfaced() -> None:
    window = TimeWindow(start=NOW + timedelta(days=3))
    assert classify(window, NOW, LIVE_TRAFFIC) is None
    assert classify(window, NOW, SCHEDULED_WORK) is Status.UPCOMING


def test_tag_status_drops_expired_and_far_future() -> None:
    incidents = [
        _incident("active", TimeWindow(start=NOW - timedelta(hours=1))),
        _incident("ending", TimeWindow(end=NOW - timedelta(minutes=20))),
        _incident("expired", TimeWindow(end=NOW - timedelta(minutes=45))),
        _incident("far", TimeWindow(start=NOW + timedelta(days=3))),
        _incident(
            "scheduled",
            TimeWindow(start=NOW + timedelta(days=3)),
            source_class=SourceClass.SCHEDULED,
        ),
    ]
    tagged = tag_status(incidents, NOW)
    assert [(i.id, i.status) for i in tagged] == [
        ("active", Status.ACTIVE),
        ("ending", Status.ENDING),
        ("scheduled", Status.UPCOMING),
    ]
