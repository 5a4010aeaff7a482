"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Lifelog Collector"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Backend ---
    backend_url: str = "http://localhost:8998"
    api_token: str | None = None  # bearer token attached to the upload call
    upload_timeout_seconds: float = 10.0

    # --- Collection ---
    timezone: str = "UTC"  # IANA name used for calendar presets and hour keys
    telemetry_config_path: str | None = None  # overrides the bundled telemetry_config.yaml

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "LIFELOG_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
