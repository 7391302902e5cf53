"""Gateway configuration using pydantic-settings.

Values come from EXTRARUNDOWN_* environment variables or a .env file.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables.

    Environment variables (all optional):
    - EXTRARUNDOWN_ACCESS_TOKEN: OAuth2 token for the Sheets API
    - EXTRARUNDOWN_CORE_URL: Endpoint that receives changes. Changes are only
      logged when unset.
    - EXTRARUNDOWN_SHEET_NAME: Title of the rundown sheet in each spreadsheet
    - EXTRARUNDOWN_POLL_INTERVAL: Seconds between checks
    - EXTRARUNDOWN_SHEET_FOLDER: Drive folder whose spreadsheets are watched
    """

    model_config = SettingsConfigDict(
        env_prefix="EXTRARUNDOWN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"

    # Google Sheets
    access_token: str = ""
    sheet_name: str = "Rundown"
    request_timeout: int = 60
    write_back_ids: bool = True
    sheet_folder: str = ""

    # Polling
    poll_interval: float = 2.0

    # Downstream automation endpoint
    core_url: str = ""

    # Rundowns declaring another gateway version are ignored; empty accepts all
    gateway_version: str = ""

    @field_validator("poll_interval")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("poll_interval must be greater than 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
