from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import UTC, datetime


def _iso(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.astimezone(tz=UTC).isoformat().replace("+00:00", "Z")


@dataclass
class SourceHealth:
    source_id: str
    last_fetch_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_status_code: int | None = None
    last_fetch_ms: int | None = None
    last_error: str | None = None
    last_record_count: int = 0
    consecutive_failures: int = 0
    success_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("last_fetch_at", "last_success_at", "last_error_at"):
            data[key] = _iso(data[key])
        return data


class HealthRegistry:
    def __init__(self) -> None:
        self._sources: dict[str, SourceHealth] = {}

    def entry(self, source_id: str) -> SourceHealth:
        return self._sources.setdefault(source_id, SourceHealth(source_id=source_id))

    def snapshot(self) -> list[dict]:
        return [self._sources[k].to_dict() for k in sorted(self._sources)]


def record_fetch_success(
    registry: HealthRegistry,
    *,
    source_id: str,
    now: datetime,
    status_code: int | None,
    fetch_ms: int | None,
    record_count: int,
) -> None:
    health = registry.entry(source_id)
    health.last_fetch_at = now
    health.last_success_at = now
    health.last_status_code = status_code
    health.last_fetch_ms = fetch_ms
    health.consecutive_failures = 0
    health.last_error = None
    health.last_error_at = None
    health.last_record_count = record_count
    health.success_count += 1


def record_fetch_error(
    registry: HealthRegistry,
    *,
    source_id: str,
    now: datetime,
    status_code: int | None,
    fetch_ms: int | None,
    error: str,
) -> int:
    health = registry.entry(source_id)
    health.last_fetch_at = now
    health.last_error_at = now
    if status_code is not None:
        health.last_status_code = status_code
    if fetch_ms is not None:
        health.last_fetch_ms = fetch_ms
    health.consecutive_failures += 1
    health.last_error = error
    health.last_record_count = 0
    health.error_count += 1
    return health.consecutive_failures
