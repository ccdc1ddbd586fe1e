"""
Application Settings
jobmap/config.py

All runtime configuration is read from the environment (or a local .env file).
Credentials are only required by the components that use them; those
components call settings.require(...) when they are constructed so that a
missing key fails at process start rather than halfway through a run.
"""

from __future__ import annotations

from typing import List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobmap.models.result import ConfigurationError

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Snowflake
    SNOWFLAKE_ACCOUNT: Optional[str] = None
    SNOWFLAKE_USER: Optional[str] = None
    SNOWFLAKE_PASSWORD: Optional[SecretStr] = None
    SNOWFLAKE_WAREHOUSE: Optional[str] = None
    SNOWFLAKE_DATABASE: Optional[str] = None
    SNOWFLAKE_SCHEMA: Optional[str] = None
    SNOWFLAKE_ROLE: Optional[str] = None

    # Redis (both unset = caching disabled)
    REDIS_URL: Optional[str] = None
    REDIS_HOST: Optional[str] = None
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Mapbox geocoding
    MAPBOX_TOKEN: Optional[SecretStr] = None
    MAPBOX_BASE_URL: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    GEOCODE_TIMEOUT_SECONDS: float = 10.0

    # Source credentials
    ADZUNA_APP_ID: Optional[str] = None
    ADZUNA_APP_KEY: Optional[SecretStr] = None
    USAJOBS_API_KEY: Optional[SecretStr] = None
    USAJOBS_USER_AGENT: Optional[str] = None
    SCRAPERAPI_KEY: Optional[SecretStr] = None

    # Ingestion defaults
    INGEST_LOCATION: str = "Phoenix, AZ"
    INGEST_SOURCES: List[str] = ["adzuna", "usajobs"]
    METRO_CENTER_LAT: float = 33.4484
    METRO_CENTER_LON: float = -112.0740
    METRO_RADIUS_KM: float = 50.0
    API_MAX_RETRIES: int = 3
    API_RETRY_BASE_DELAY: float = 1.0
    API_PAGE_DELAY: float = 1.0
    USAJOBS_MAX_PAGES: int = 5
    ADZUNA_MAX_PAGES: int = 1
    ADZUNA_RESULTS_PER_PAGE: int = 50
    SCRAPE_MAX_RESULTS: int = 25
    SCRAPE_PAGE_DELAY: List[float] = [2.0, 4.0]
    SCRAPE_DETAIL_DELAY: List[float] = [1.0, 2.0]
    CHALLENGE_TIMEOUT_SECONDS: float = 15.0
    SCRAPER_HEADLESS: bool = True

    # Search and cache
    SEARCH_DEFAULT_LIMIT: int = 200
    SEARCH_MAX_LIMIT: int = 500
    SEARCH_TTL_FILTERED: int = 180
    SEARCH_TTL_UNFILTERED: int = 300
    SUGGESTIONS_TTL: int = 3600
    SUGGESTIONS_LIMIT: int = 10

    # Employer submissions
    SUBMISSION_RATE_LIMIT: int = 5
    SUBMISSION_RATE_WINDOW_SECONDS: int = 3600
    RATE_LIMIT_SWEEP_SECONDS: int = 300

    # Maintenance
    COLLISION_DEMOTE_THRESHOLD: int = 5
    COLLISION_GRID_STEP: float = 0.0008
    COLLISION_PRECISION: int = 5
    COLLISION_PAUSE_SECONDS: float = 0.2
    JOB_RETENTION_DAYS: int = 90

    ADMIN_API_KEY: Optional[SecretStr] = None
    LOG_LEVEL: str = "INFO"

    def require(self, *names: str) -> None:
        """Raise ConfigurationError listing every named setting that is empty."""
        missing = [name for name in names if not getattr(self, name, None)]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    def secret(self, name: str) -> Optional[str]:
        value = getattr(self, name, None)
        if value is None:
            return None
        if isinstance(value, SecretStr):
            return value.get_secret_value()
        return str(value)

    @property
    def cache_configured(self) -> bool:
        return bool(self.REDIS_URL or self.REDIS_HOST)


settings = Settings()
