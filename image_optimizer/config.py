"""
Application configuration.

Settings are read from the environment (and an optional ``.env`` file) once at
startup and handed to ``create_app``; nothing else reads the environment.
"""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_KEY = "your-default-api-key-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    WORKERS: int = Field(1, ge=1)
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Authentication
    API_KEY: str = DEFAULT_API_KEY

    # Upload limits
    MAX_FILE_SIZE: int = Field(5 * 1024 * 1024, gt=0)

    # Optimization defaults
    DEFAULT_QUALITY: int = Field(75, ge=1, le=100)
    DEFAULT_FORMAT: str = "webp"
    MAX_WIDTH: int = Field(2000, gt=0)

    # Rate limiting
    RATE_LIMIT_WINDOW_SECONDS: int = Field(15 * 60, gt=0)
    RATE_LIMIT_MAX_REQUESTS: int = Field(100, gt=0)
    TRUST_FORWARDED_FOR: bool = False

    # Temporary artifacts (return=url)
    TEMP_DIR: str = "./temp"
    TEMP_URL_PREFIX: str = "/temp"
    TEMP_FILE_TTL_SECONDS: int = Field(3600, ge=0)
    TEMP_SWEEP_INTERVAL_SECONDS: int = Field(300, gt=0)

    # Cross-origin requests
    CORS_ORIGINS: List[str] = ["*"]

    @field_validator("LOG_LEVEL")
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("DEFAULT_FORMAT")
    def normalize_default_format(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("TEMP_URL_PREFIX")
    def normalize_url_prefix(cls, v: str) -> str:
        return "/" + v.strip("/")

    @property
    def uses_default_api_key(self) -> bool:
        return self.API_KEY == DEFAULT_API_KEY


@lru_cache
def get_settings() -> Settings:
    """Build the settings once per process."""
    return Settings()
