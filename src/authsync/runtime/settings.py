"""Process-level settings read from the environment and ``.env``.

Only the values needed to locate and load ``config.yaml`` live here; everything
else is part of the templated YAML configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentVariables(BaseSettings):
    """Simple primitive values loaded from environment variables and .env files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    app_environment: Literal["development", "production", "test"] = Field(
        default="development", validation_alias="APP_ENVIRONMENT"
    )
    config_path: Path = Field(
        default=Path("config.yaml"), validation_alias="AUTHSYNC_CONFIG"
    )
