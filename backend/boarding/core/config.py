# Central place for all configurable settings. We use Pydantic's
# BaseSettings so values can be read from env vars or a .env file.
# Tour storage, site resolution and edition limits are all tuned here.

import json
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def safe_json_loads(value):
    try:
        return json.loads(value)
    except Exception:
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_json_loads=safe_json_loads,
    )

    # Core DB connection string, like sqlite:///./boarding.db or a Postgres URL.
    DATABASE_URL: str

    # Secret key used for signing access tokens.
    SECRET_KEY: str

    # JWT algorithm to use. Default HS256 (symmetric HMAC-SHA256).
    ALGORITHM: str = "HS256"

    # How long issued access tokens are valid, in minutes.
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Toggle SQLAlchemy echo logs. Useful for debugging queries locally.
    DB_ECHO: bool = False

    # Development mode exposes error context in API error payloads.
    DEV_MODE: bool = False

    LOG_LEVEL: str = "INFO"

    # Site resolution: header/query selection and fallbacks.
    SITE_HEADER_NAME: str = "X-Site"
    SITE_QUERY_PARAM: str = "site"
    DEFAULT_SITE_HANDLE: Optional[str] = None
    REQUIRE_SITE_PARAM: bool = False

    # Edition gating ("lite", "standard" or "pro").
    BOARDING_EDITION: str = "pro"
    LITE_TOUR_LIMIT: int = Field(default=3, gt=0)

    # Import/export limits and envelope version.
    IMPORT_MAX_TOURS: int = Field(default=100, gt=0)
    IMPORT_MAX_STEPS_PER_TOUR: int = Field(default=50, gt=0)
    IMPORT_MAX_FILE_SIZE_MB: int = Field(default=10, gt=0)
    IMPORT_ALLOWED_EXTENSIONS: List[str] = Field(
        default_factory=lambda: ["json", "csv"]
    )
    EXPORT_FORMAT_VERSION: str = "1.0"

    @field_validator("IMPORT_ALLOWED_EXTENSIONS", mode="before")
    @classmethod
    def _parse_list_values(cls, value):
        if isinstance(value, str):
            parts = [p.strip().lower() for p in value.split(",") if p.strip()]
            return parts
        return value

    @field_validator("BOARDING_EDITION", mode="before")
    @classmethod
    def _normalize_edition(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


# Instantiate a single settings object for app-wide import.
# Any module can just `from boarding.core.config import settings`.
settings = Settings()
