from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from geo.region import BoundingBox
from normalize.models import SourceClass
from normalize.temporal import TemporalPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    user_agent: str = Field(
        default="road-conditions-monitor/0.1", validation_alias="USER_AGENT"
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    vt511_incidents_url: str = Field(
        default="https://nec-por.ne-compass.com/NEC.XmlDataPortal/api/c2c?networks=Vermont&dataTypes=incidentData",
        validation_alias="VT511_INCIDENTS_URL",
    )
    vt511_closures_url: str = Field(
        default="https://nec-por.ne-compass.com/NEC.XmlDataPortal/api/c2c?networks=Vermont&dataTypes=laneClosureData",
        validation_alias="VT511_CLOSURES_URL",
    )
    usgs_gauges_url: str = Field(
        default="https://waterservices.usgs.gov/nwis/iv/?format=json&stateCd=VT&parameterCd=00065&siteStatus=active",
        validation_alias="USGS_GAUGES_URL",
    )
    here_api_key: str | None = Field(default=None, validation_alias="HERE_API_KEY")
    here_url: str = Field(
        default="https://data.traffic.hereapi.com/v7/incidents",
        validation_alias="HERE_URL",
    )
    feeds_dir: Path = Field(default=Path("feeds"), validation_alias="FEEDS_DIR")

    region_min_lat: float = Field(default=42.6, validation_alias="REGION_MIN_LAT")
    region_max_lat: float = Field(default=45.2, validation_alias="REGION_MAX_LAT")
    region_min_lng: float = Field(default=-73.5, validation_alias="REGION_MIN_LNG")
    region_max_lng: float = Field(default=-71.4, validation_alias="REGION_MAX_LNG")

    refresh_interval_seconds: int = Field(
        default=120, validation_alias="REFRESH_INTERVAL_SECONDS"
    )
    gauge_height_threshold_ft: float = Field(
        default=15.0, validation_alias="GAUGE_HEIGHT_THRESHOLD_FT"
    )
    gauge_max_age_hours: float = Field(default=3.0, validation_alias="GAUGE_MAX_AGE_HOURS")

    live_look_ahead_hours: float = Field(
        default=24.0, validation_alias="LIVE_LOOK_AHEAD_HOURS"
    )
    live_grace_minutes: float = Field(default=30.0, validation_alias="LIVE_GRACE_MINUTES")
    scheduled_look_ahead_days: float = Field(
        default=7.0, validation_alias="SCHEDULED_LOOK_AHEAD_DAYS"
    )
    scheduled_grace_hours: float = Field(
        default=24.0, validation_alias="SCHEDULED_GRACE_HOURS"
    )

    initial_zoom: float = Field(default=7.5, validation_alias="INITIAL_ZOOM")

    @property
    def region(self) -> BoundingBox:
        return BoundingBox(
            min_lat=self.region_min_lat,
            max_lat=self.region_max_lat,
            min_lng=self.region_min_lng,
            max_lng=self.region_max_lng,
        )

    @property
    def temporal_policies(self) -> dict[SourceClass, TemporalPolicy]:
        return {
            SourceClass.LIVE: TemporalPolicy(
                look_ahead=timedelta(hours=self.live_look_ahead_hours),
                grace=timedelta(minutes=self.live_grace_minutes),
            ),
            SourceClass.SCHEDULED: TemporalPolicy(
                look_ahead=timedelta(days=self.scheduled_look_ahead_days),
                grace=timedelta(hours=self.scheduled_grace_hours),
            ),
        }
