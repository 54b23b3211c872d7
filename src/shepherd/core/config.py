"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ApiConfig(BaseSettings):
    """Backend API client configuration."""

    model_config = {"env_prefix": "SHEPHERD_API_"}

    base_url: str = "http://localhost:3001"
    token: str | None = None
    timeout_seconds: int = 30
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5


class WizardConfig(BaseSettings):
    """Wizard engine configuration."""

    model_config = {"env_prefix": "SHEPHERD_WIZARD_"}

    wizards_dir: str | None = None
    cross_field_rules_path: str | None = None
    timezone: str = "UTC"
    session_ttl_minutes: int = 120


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "SHEPHERD_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    api: ApiConfig = Field(default_factory=ApiConfig)
    wizard: WizardConfig = Field(default_factory=WizardConfig)
