from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime

from ingest.parsers.timestamps import parse_timestamp
from normalize.models import CandidateRecord, IncidentType, SourceClass


logger = logging.getLogger(__name__)


def _latest_reading(series: dict) -> tuple[float, datetime] | None:
    values_blocks = series.get("values") or []
    if not values_blocks:
        return None
    readings = values_blocks[0].get("value") or []
    if not readings:
        return None
    latest = readings[-1]
    height = float(latest["value"])
    read_at = parse_timestamp(latest.get("dateTime"))
    if read_at is None:
        raise ValueError("reading without dateTime")
    return height, read_at


def parse_usgs_gauges(
    data: bytes,
    *,
    source: str,
    now: datetime,
    height_threshold_ft: float,
    max_age_hours: float,
    counter: Counter[str] | None = None,
) -> list[CandidateRecord]:
    """Emit one FLOODING candidate per gauge whose latest reading is high and fresh.

    Stale or below-threshold gauges produce nothing.
    """
    doc = json.loads(data)
    if not isinstance(doc, dict):
        raise ValueError("gauge payload is not an object")
    series_list = (doc.get("value") or {}).get("timeSeries") or []

    records: list[CandidateRecord] = []
    for series in series_list:
        try:
            site = series["sourceInfo"]
            reading = _latest_reading(series)
            if reading is None:
                continue
            height, read_at = reading
            hours_since = (now - read_at).total_seconds() / 3600.0
            if height <= height_threshold_ft or hours_since >= max_age_hours:
                continue

            site_codes = site.get("siteCode") or []
            site_code = str(site_codes[0]["value"]) if site_codes else "unknown"
            geog = site["geoLocation"]["geogLocation"]
            lat = float(geog["latitude"])
            lng = float(geog["longitude"])
            site_name = str(site.get("siteName") or site_code)
            minutes = round(hours_since * 60)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            logger.debug("skipping malformed gauge series: %s", exc)
            if counter is not None:
                counter["parse_error"] += 1
            continue

        records.append(
            CandidateRecord(
                source=source,
                local_id=site_code,
                lat=lat,
                lng=lng,
                source_class=SourceClass.LIVE,
                type_hint=IncidentType.FLOODING,
                raw_severity="High",
                start=read_at,
                road_name=site_name,
                title=f"Flooding at {site_name}",
                description=(
                    f"Gage height: {height:.2f} ft (updated {minutes} min ago)"
                ),
                extra={"gage_height_ft": f"{height:.2f}", "site_code": site_code},
            )
        )
    return records
