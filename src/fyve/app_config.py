"""Application configuration file (fyve.yaml)."""
import logging
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """The application configuration file is missing or invalid"""
    pass


class AppConfig(BaseModel):
    """Deployment settings for one application.

    The file is shared with deploy configuration: ``update`` reads only
    ``app``, while ``port`` and ``env`` are validated so a broken file is
    reported no matter which command loads it.

    Example fyve.yaml:

        app: web
        port: 3000
        env:
          NODE_ENV: production
    """

    app: str
    port: Optional[int] = None
    env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("app")
    @classmethod
    def app_name_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("app name is required")
        return v.strip()

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v):
        # YAML turns `PORT: 3000` into an int
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(key): "" if value is None else str(value) for key, value in v.items()}
        return v

    def override_app_name(self, app_name: Optional[str]) -> None:
        """Replace the app name with one given on the command line."""
        if app_name:
            self.app = app_name


def load_app_config(path: Union[str, Path]) -> AppConfig:
    """Read and validate an application configuration file.

    Args:
        path: Location of the YAML file

    Returns:
        Parsed AppConfig

    Raises:
        ConfigError: If the file is missing, not YAML, or fails validation
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    try:
        config = AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration in {config_path}: {e}") from e

    logger.debug(f"Loaded app config for {config.app} from {config_path}")
    return config
