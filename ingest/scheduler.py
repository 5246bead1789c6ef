from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from collections import Counter
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import httpx

from app.settings import Settings
from health.health import HealthRegistry, record_fetch_error, record_fetch_success
from ingest.cache import FeedCache
from ingest.errors import FeedError, FeedUnavailable, ParseFailure
from ingest.feed_packs import FeedPackEntry, load_feed_pack_entries
from ingest.fetch import NOT_MODIFIED, cache_control_max_age_seconds, fetch
from ingest.parsers.gauges import parse_usgs_gauges
from ingest.parsers.geojson import parse_feature_collection
from ingest.parsers.here import parse_here_incidents
from ingest.parsers.xml import parse_vt511_xml
from normalize.models import CandidateRecord, Incident
from normalize.pipeline import run_pipeline
from realtime.bus import Event, EventBus


logger = logging.getLogger(__name__)

ParseFn = Callable[[bytes, datetime, Counter], list[CandidateRecord]]
Clock = Callable[[], datetime]
PublishFn = Callable[[list[Incident]], object]


@dataclass(frozen=True)
class SourcePlugin:
    source_id: str
    name: str
    url: str
    parse: ParseFn
    enabled: bool = True
    params: dict[str, str] | None = None
    headers: dict[str, str] | None = None


@dataclass(frozen=True)
class FeedResult:
    source_id: str
    records: list[CandidateRecord] = field(default_factory=list)
    ok: bool = True
    error: str | None = None
    status_code: int | None = None


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def builtin_sources(settings: Settings) -> list[SourcePlugin]:
    sources = [
        SourcePlugin(
            source_id="vt511_incidents",
            name="New England 511 incidents (Vermont)",
            url=settings.vt511_incidents_url,
            parse=lambda data, now, counter: parse_vt511_xml(
                data, source="vt511", now=now, counter=counter
            ),
        ),
        SourcePlugin(
            source_id="vt511_closures",
            name="New England 511 lane closures (Vermont)",
            url=settings.vt511_closures_url,
            parse=lambda data, now, counter: parse_vt511_xml(
                data, source="vt511", now=now, counter=counter
            ),
        ),
        SourcePlugin(
            source_id="usgs_gauges",
            name="USGS stream gauges (Vermont)",
            url=settings.usgs_gauges_url,
            parse=lambda data, now, counter: parse_usgs_gauges(
                data,
                source="usgs",
                now=now,
                height_threshold_ft=settings.gauge_height_threshold_ft,
                max_age_hours=settings.gauge_max_age_hours,
                counter=counter,
            ),
        ),
    ]
    if settings.here_api_key:
        sources.append(
            SourcePlugin(
                source_id="here_traffic",
                name="HERE traffic incidents",
                url=settings.here_url,
                params={
                    "locationReferencing": "shape",
                    "in": f"bbox:{settings.region.as_query_bbox()}",
                    "apiKey": settings.here_api_key,
                },
                parse=lambda data, now, counter: parse_here_incidents(
                    data, source="here", counter=counter
                ),
            )
        )
    return sources


def _feed_pack_plugin(entry: FeedPackEntry) -> SourcePlugin:
    return SourcePlugin(
        source_id=entry.source_id,
        name=entry.name,
        url=entry.url,
        enabled=entry.enabled,
        parse=lambda data, now, counter: parse_feature_collection(
            data,
            source=entry.source_id,
            incident_type=entry.incident_type,
            source_class=entry.source_class,
            aliases=entry.aliases,
            default_title=entry.default_title,
            counter=counter,
        ),
    )


def feed_pack_sources(feeds_dir: Path) -> list[SourcePlugin]:
    plugins: list[SourcePlugin] = []
    for entries in load_feed_pack_entries(feeds_dir).values():
        plugins.extend(_feed_pack_plugin(entry) for entry in entries)
    return plugins


def all_sources(settings: Settings) -> list[SourcePlugin]:
    return builtin_sources(settings) + feed_pack_sources(settings.feeds_dir)


async def _load_payload(
    client: httpx.AsyncClient,
    plugin: SourcePlugin,
    *,
    now: datetime,
    user_agent: str,
    cache: FeedCache | None,
) -> tuple[bytes, int | None, int | None]:
    entry = None
    if cache is not None:
        fresh = cache.get(plugin.source_id, now)
        if fresh is not None:
            return fresh, None, None
        entry = cache.entry(plugin.source_id)

    try:
        status_code, content, headers, elapsed_ms = await fetch(
            client,
            url=plugin.url,
            user_agent=user_agent,
            params=plugin.params,
            etag=entry.etag if entry is not None else None,
            last_modified=entry.last_modified if entry is not None else None,
            extra_headers=plugin.headers,
        )
    except httpx.TimeoutException as exc:
        raise FeedUnavailable(plugin.source_id, "timeout") from exc
    except httpx.RequestError as exc:
        raise FeedUnavailable(plugin.source_id, f"request_error:{exc.__class__.__name__}") from exc

    if status_code == NOT_MODIFIED and entry is not None:
        content = entry.value
    if content is None:
        raise FeedUnavailable(plugin.source_id, f"http_{status_code}", status_code=status_code)

    if cache is not None:
        cache.put(
            plugin.source_id,
            content,
            now=now,
            max_age_seconds=cache_control_max_age_seconds(headers.get("cache-control")),
            etag=headers.get("etag") or (entry.etag if entry is not None else None),
            last_modified=headers.get("last-modified")
            or (entry.last_modified if entry is not None else None),
        )
    return content, status_code, elapsed_ms


async def fetch_source(
    client: httpx.AsyncClient,
    plugin: SourcePlugin,
    *,
    now: datetime,
    user_agent: str,
    cache: FeedCache | None = None,
    health: HealthRegistry | None = None,
    counter: Counter[str] | None = None,
) -> FeedResult:
    """Fetch and parse one feed. Never raises; a failing feed yields no records."""
    if counter is None:
        counter = Counter()
    status_code: int | None = None
    elapsed_ms: int | None = None
    try:
        content, status_code, elapsed_ms = await _load_payload(
            client, plugin, now=now, user_agent=user_agent, cache=cache
        )
        try:
            records = plugin.parse(content, now, counter)
        except (ValueError, ET.ParseError, AttributeError, TypeError) as exc:
            raise ParseFailure(plugin.source_id, f"parse_error:{exc.__class__.__name__}") from exc
    except FeedError as exc:
        if exc.status_code is not None:
            status_code = exc.status_code
        logger.warning("feed %s unavailable: %s", plugin.source_id, exc.reason)
        if health is not None:
            record_fetch_error(
                health,
                source_id=plugin.source_id,
                now=now,
                status_code=status_code,
                fetch_ms=elapsed_ms,
                error=exc.reason,
            )
        return FeedResult(
            source_id=plugin.source_id,
            ok=False,
            error=exc.reason,
            status_code=status_code,
        )

    if health is not None:
        record_fetch_success(
            health,
            source_id=plugin.source_id,
            now=now,
            status_code=status_code,
            fetch_ms=elapsed_ms,
            record_count=len(records),
        )
    logger.debug("feed %s: %d records", plugin.source_id, len(records))
    return FeedResult(source_id=plugin.source_id, records=records, status_code=status_code)


class IncidentRefresher:
    """Polls every enabled feed on a timer and holds the latest pipeline output.

    Ticks may overlap. Each tick is numbered when it starts and its output is
    applied only if no later-started tick has already been applied, so a slow
    tick can never overwrite a newer result.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        client: httpx.AsyncClient,
        plugins: list[SourcePlugin] | None = None,
        clock: Clock = _utc_now,
        bus: EventBus | None = None,
        health: HealthRegistry | None = None,
        cache: FeedCache | None = None,
        on_publish: PublishFn | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._plugins = plugins if plugins is not None else all_sources(settings)
        self._clock = clock
        self._bus = bus
        self.health = health if health is not None else HealthRegistry()
        self._cache = cache
        self._on_publish = on_publish

        self.incidents: list[Incident] = []
        self.last_error: str | None = None
        self.last_updated: datetime | None = None
        self.last_rejections: dict[str, int] = {}

        self._generation = 0
        self._applied_generation = 0
        self._in_flight = 0
        self._tick_tasks: set[asyncio.Task] = set()
        self._loop_task: asyncio.Task | None = None

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def plugins(self) -> list[SourcePlugin]:
        return list(self._plugins)

    async def tick(self) -> bool:
        """Run one refresh; returns whether its result was applied."""
        self._generation += 1
        generation = self._generation
        self._in_flight += 1
        try:
            now = self._clock()
            enabled = [p for p in self._plugins if p.enabled]
            counter: Counter[str] = Counter()
            results = await asyncio.gather(
                *(
                    fetch_source(
                        self._client,
                        plugin,
                        now=now,
                        user_agent=self._settings.user_agent,
                        cache=self._cache,
                        health=self.health,
                        counter=counter,
                    )
                    for plugin in enabled
                )
            )

            if generation <= self._applied_generation:
                logger.debug("tick %d superseded by tick %d", generation, self._applied_generation)
                return False
            self._applied_generation = generation

            if enabled and all(not r.ok for r in results):
                self.last_error = "All incident feeds unavailable: " + ", ".join(
                    f"{r.source_id} ({r.error})" for r in results
                )
                logger.warning(self.last_error)
                return True

            incidents = run_pipeline(
                [r.records for r in results],
                now=now,
                region=self._settings.region,
                policies=self._settings.temporal_policies,
                counter=counter,
            )
            self.incidents = incidents
            self.last_error = None
            self.last_updated = now
            self.last_rejections = dict(counter)
            logger.info(
                "tick %d: %d incidents from %d feeds", generation, len(incidents), len(results)
            )
            if self._on_publish is not None:
                self._on_publish(incidents)
            if self._bus is not None:
                await self._bus.publish(
                    Event(
                        type="incidents.updated",
                        data={
                            "count": len(incidents),
                            "updated_at": now.isoformat().replace("+00:00", "Z"),
                        },
                    )
                )
            return True
        finally:
            self._in_flight -= 1

    def request_refresh(self) -> asyncio.Task:
        task = asyncio.create_task(self.tick())
        self._tick_tasks.add(task)
        task.add_done_callback(self._tick_done)
        return task

    def _tick_done(self, task: asyncio.Task) -> None:
        self._tick_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("refresh tick failed", exc_info=exc)

    async def run(self) -> None:
        while True:
            self.request_refresh()
            await asyncio.sleep(self._settings.refresh_interval_seconds)

    def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        tasks = list(self._tick_tasks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tick_tasks.clear()
