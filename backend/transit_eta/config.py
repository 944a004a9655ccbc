"""
Application configuration using Pydantic Settings for type safety and validation.
Loads from environment variables with sensible defaults for development.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MTA_FEED_BASE = "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds"


class Settings(BaseSettings):
    """Central configuration for the commute arrival service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Commute ETA"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Enable debug mode")

    # API
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:3000", "capacitor://localhost"]

    # Credentials
    mta_api_key: Optional[str] = None
    mta_bus_api_key: Optional[str] = None
    njt_username: Optional[str] = None
    njt_password: Optional[str] = None

    # Binary transit feeds, keyed by feed group
    subway_feeds: Dict[str, str] = {
        "123456S": f"{MTA_FEED_BASE}/nyct%2Fgtfs",
        "ACE": f"{MTA_FEED_BASE}/nyct%2Fgtfs-ace",
        "BDFM": f"{MTA_FEED_BASE}/nyct%2Fgtfs-bdfm",
        "G": f"{MTA_FEED_BASE}/nyct%2Fgtfs-g",
        "JZ": f"{MTA_FEED_BASE}/nyct%2Fgtfs-jz",
        "NQRW": f"{MTA_FEED_BASE}/nyct%2Fgtfs-nqrw",
        "L": f"{MTA_FEED_BASE}/nyct%2Fgtfs-l",
        "SIR": f"{MTA_FEED_BASE}/nyct%2Fgtfs-si",
    }
    lirr_feed_url: str = f"{MTA_FEED_BASE}/lirr%2Fgtfs-lirr"
    mnr_feed_url: str = f"{MTA_FEED_BASE}/mnr%2Fgtfs-mnr"
    path_feed_url: str = "https://path.transitdata.nyc/gtfsrt"
    ferry_feed_url: str = "http://nycferry.connexionz.net/rtt/public/utility/gtfsrealtime.aspx/tripupdate"
    alerts_feed_url: str = f"{MTA_FEED_BASE}/camsys%2Fsubway-alerts"

    # Bus sources
    bus_feed_url: str = "http://gtfsrt.prod.obanyc.com/tripUpdates"
    siri_base_url: str = "http://bustime.mta.info/api/siri"

    # Proprietary regional APIs
    njt_rail_base_url: str = "https://raildata.njtransit.com/api/TrainData"
    njt_bus_base_url: str = "https://pcsdata.njtransit.com/api/BUSDV2"

    # Timing
    feed_timeout: float = Field(default=10.0, ge=1)
    query_timeout: float = Field(default=25.0, ge=1, description="Hard budget per query")
    alerts_timeout: float = Field(default=3.0, gt=0)
    bus_feed_ttl: int = Field(default=30, ge=1)
    alerts_ttl: int = Field(default=60, ge=1)
    njt_rail_token_ttl: int = Field(default=12 * 3600, ge=60)
    njt_bus_token_ttl: int = Field(default=23 * 3600, ge=60)

    # Merge
    max_arrivals: int = Field(default=3, ge=1)
    correlation_window_seconds: int = Field(default=1200, ge=0)
    scheduled_grace_seconds: int = Field(default=300, ge=0)
    schedule_lookahead: int = Field(default=10, ge=1)

    # Schedule snapshots
    schedule_db_dir: Path = Path("data")
    schedule_scratch_dir: Path = Path("/tmp")

    # Fixed civil timezone for all schedule data
    timezone: str = "America/New_York"


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance to avoid repeated parsing."""
    return Settings()
