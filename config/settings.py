"""
Centralized configuration for the lead intake engine.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = Field(default="Lead Intake Engine", env="APP_NAME")

    # Roster
    roster_backend: str = Field(default="memory", env="ROSTER_BACKEND")  # memory | database
    roster_seed_file: Optional[str] = Field(default=None, env="ROSTER_SEED_FILE")
    roster_timeout_seconds: float = Field(default=2.0, env="ROSTER_TIMEOUT_SECONDS")
    max_reservation_attempts: int = Field(default=5, env="MAX_RESERVATION_ATTEMPTS")

    # Scoring
    business_timezone: str = Field(default="America/New_York", env="BUSINESS_TIMEZONE")

    # Routing policy (tunable ranking weights)
    ranking_specialty_weight: float = Field(default=40.0, env="RANKING_SPECIALTY_WEIGHT")
    ranking_language_weight: float = Field(default=30.0, env="RANKING_LANGUAGE_WEIGHT")
    ranking_load_weight: float = Field(default=30.0, env="RANKING_LOAD_WEIGHT")
    default_language: str = Field(default="en", env="DEFAULT_LANGUAGE")

    # Database
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_version: str = Field(default="1.0.0", env="API_VERSION")
    rate_limit_per_minute: int = Field(default=120, env="RATE_LIMIT_PER_MINUTE")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def uses_database_roster(self) -> bool:
        return self.roster_backend.lower() == "database"

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
