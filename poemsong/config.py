"""Application configuration."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine and service settings with env var overrides."""

    # Logging
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"

    # Composition
    strict_validation: bool = True  # raise on internal consistency failures
    min_duration_seconds: int = 120

    model_config = {"env_prefix": "POEMSONG_"}


settings = Settings()
