"""
Application configuration using Pydantic Settings.
"""

import os
from datetime import date
from functools import lru_cache
from pydantic_settings import BaseSettings

from rei_analyzer.calculations.models import DayCountConvention, EngineOptions


def get_env_file() -> str:
    """Determine which env file to use based on environment."""
    env = os.getenv("APP_ENV", "development")
    if env == "production":
        return ".env.production"
    return ".env.development"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App settings
    app_name: str = "RE Investment Analyzer"
    debug: bool = False
    log_level: str = "INFO"
    app_env: str = "development"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Calculation engine
    day_count_convention: DayCountConvention = DayCountConvention.ACTUAL_365
    irr_tolerance: float = 1e-7
    irr_max_iterations: int = 100

    # Month 0 for projects posted without an explicit start date
    default_start_date: date = date(2024, 1, 1)

    class Config:
        env_file = get_env_file()
        env_file_encoding = "utf-8"
        extra = "ignore"

    def engine_options(self) -> EngineOptions:
        """Engine options derived from these settings."""
        return EngineOptions(
            day_count=self.day_count_convention,
            irr_tolerance=self.irr_tolerance,
            irr_max_iterations=self.irr_max_iterations,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
