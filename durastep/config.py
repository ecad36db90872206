from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


class RetryDefaults(BaseModel):
    """Retry policy applied to steps registered without an explicit one."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_base_ms: int = Field(default=1000, ge=0)


class LoggingConfig(BaseModel):
    """Logging settings applied by the CLI."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class DurastepConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    retry: RetryDefaults = RetryDefaults()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Optional[str] = None) -> DurastepConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to DURASTEP_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("DURASTEP_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = DurastepConfig(**data)
    else:
        config = DurastepConfig()

    env_db_url = os.getenv("DURASTEP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
