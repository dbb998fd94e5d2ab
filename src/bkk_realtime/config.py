"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

EXAMPLES_PATH = "/BKK Examples"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "BKK Realtime Verification API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Feed backend (text dumps of the BKK GTFS-RT feeds)
    bkk_api_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BKK_API_BASE_URL", "API_BASE_URL"),
    )
    bkk_dev_base_url: str = "http://localhost:8000"
    bkk_prod_base_url: str = "https://ikapi.szlg.info"

    # Host serving the reference tables and the bundled fallback payloads
    static_base_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("STATIC_BASE_URL", "BKK_STATIC_BASE_URL"),
    )

    # Fetch-and-cache
    feed_cache_ttl_sec: float = Field(default=120.0, gt=0)
    feed_fetch_timeout_sec: float = Field(default=30.0, gt=0)

    # Trip update enrichment
    delay_threshold_minutes: int = 2

    # Default radius for nearby-vehicle queries
    default_nearby_radius_m: float = 500.0

    @property
    def bkk_base_url(self) -> str:
        """Feed backend base URL chosen by deployment environment."""
        if self.bkk_api_base_url:
            return self.bkk_api_base_url.rstrip("/")
        if self.environment == "development":
            return self.bkk_dev_base_url.rstrip("/")
        return self.bkk_prod_base_url.rstrip("/")

    @property
    def alerts_url(self) -> str:
        return f"{self.bkk_base_url}/api/bkk/Alerts"

    @property
    def vehicle_positions_url(self) -> str:
        return f"{self.bkk_base_url}/api/bkk/VehiclePositions"

    @property
    def trip_updates_url(self) -> str:
        return f"{self.bkk_base_url}/api/bkk/TripUpdates"

    @property
    def routes_url(self) -> str:
        return _static_url(self.static_base_url, "GTFS/routes.txt")

    @property
    def stops_url(self) -> str:
        return _static_url(self.static_base_url, "GTFS/stops.txt")

    @property
    def example_alerts_url(self) -> str:
        return _static_url(self.static_base_url, "Alerts.txt")

    @property
    def example_vehicle_positions_url(self) -> str:
        return _static_url(self.static_base_url, "VehiclePositions.txt")


def _static_url(base: str, relative: str) -> str:
    """Return an URL below the examples directory with the path percent-encoded."""
    path = quote(f"{EXAMPLES_PATH}/{relative}")
    return f"{base.rstrip('/')}{path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
