from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class CacheEntry:
    value: bytes
    expires_at: datetime
    etag: str | None = None
    last_modified: str | None = None

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now


class FeedCache:
    """Raw payloads keyed by source id.

    An entry is served without a request until its max-age runs out; after
    that it is kept so its validators can be sent with the next request. The
    cache never reads the clock itself; callers pass the tick's ``now``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str, now: datetime) -> bytes | None:
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(now):
            return None
        return entry.value

    def entry(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def put(
        self,
        key: str,
        value: bytes,
        *,
        now: datetime,
        max_age_seconds: int | None,
        etag: str | None = None,
        last_modified: str | None = None,
    ) -> None:
        max_age = max(max_age_seconds or 0, 0)
        if max_age == 0 and etag is None and last_modified is None:
            self._entries.pop(key, None)
            return
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=now + timedelta(seconds=max_age),
            etag=etag,
            last_modified=last_modified,
        )
