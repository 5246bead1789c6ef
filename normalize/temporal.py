from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from normalize.models import Incident, SourceClass, Status, TimeWindow


@dataclass(frozen=True)
class TemporalPolicy:
    look_ahead: timedelta
    grace: timedelta


LIVE_TRAFFIC = TemporalPolicy(look_ahead=timedelta(hours=24), grace=timedelta(minutes=30))
SCHEDULED_WORK = TemporalPolicy(look_ahead=timedelta(days=7), grace=timedelta(days=1))

DEFAULT_POLICIES: dict[SourceClass, TemporalPolicy] = {
    SourceClass.LIVE: LIVE_TRAFFIC,
    SourceClass.SCHEDULED: SCHEDULED_WORK,
}


def classify(window: TimeWindow, now: datetime, policy: TemporalPolicy) -> Status | None:
    """Activity status of a time window at ``now``.

    Returns ``None`` for events starting beyond the look-ahead horizon; those
    are not surfaced at all. Ended events past the grace window are EXPIRED.
    """
    start, end = window.start, window.end
    if start is None and end is None:
        return Status.ACTIVE
    if start is not None and start > now:
        if start - now <= policy.look_ahead:
            return Status.UPCOMING
        return None
    if end is not None and end < now:
        if now - end <= policy.grace:
            return Status.ENDING
        return Status.EXPIRED
    return Status.ACTIVE


def tag_status(
    incidents: Iterable[Incident],
    now: datetime,
    policies: Mapping[SourceClass, TemporalPolicy] = DEFAULT_POLICIES,
) -> list[Incident]:
    tagged: list[Incident] = []
    for incident in incidents:
        policy = policies.get(incident.source_class, LIVE_TRAFFIC)
        status = classify(incident.time_window, now, policy)
        if status is None or status is Status.EXPIRED:
            continue
        tagged.append(replace(incident, status=status))
    return tagged
