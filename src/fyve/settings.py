# src/fyve/settings.py
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single source of truth for CLI settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from fyve.settings import get_settings
        settings = get_settings()
        host = settings.docker_host
    """

    # Docker engine
    docker_host: Optional[str] = Field(
        default=None,
        description="Docker engine endpoint, e.g. tcp://10.0.0.5:2375 (DOCKER_HOST is used when unset)"
    )

    docker_timeout: int = Field(
        default=120,
        description="Per-request timeout for Docker engine calls in seconds"
    )

    stop_timeout: Optional[int] = Field(
        default=None,
        description="Seconds to wait for a container to stop before it is killed"
    )

    replace_timeout: float = Field(
        default=600.0,
        description="Deadline for an update to reach its commit point in seconds"
    )

    cleanup_attempts: int = Field(
        default=3,
        description="Attempts for removing the old container and inspecting the new one"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        validation_alias=AliasChoices("FYVE_AWS_REGION", "AWS_REGION", "AWS_DEFAULT_REGION")
    )

    aws_profile: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FYVE_AWS_PROFILE", "AWS_PROFILE")
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FYVE_AWS_ENDPOINT_URL", "AWS_ENDPOINT_URL"),
        description="Override endpoint, e.g. a moto server for local testing"
    )

    # App configuration file
    config_file: str = Field(
        default="fyve.yaml",
        description="Path to the application configuration file"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if level not in valid_levels:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {valid_levels}")
        return level

    @field_validator("docker_timeout", "cleanup_attempts")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    model_config = SettingsConfigDict(
        env_prefix="FYVE_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
