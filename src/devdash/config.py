"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Application configuration. All values sourced from environment variables."""

    # Required
    database_path: str

    # Optional — Ingestion
    sources_config_path: str = "./config/sources.json"
    fetch_interval_minutes: int = 30
    refresh_max_workers: int = 4
    http_timeout_seconds: float = 20.0
    http_user_agent: str = "DevDashboard/1.0"

    # Optional — Retention
    post_retention_days: int = 30
    cleanup_schedule_cron: str = "0 4 * * *"

    # Optional — Web
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    # Optional — Application
    log_level: str = "INFO"
    log_format: str = "json"
    app_env: str = "production"


_REQUIRED_VARS = [
    "DATABASE_PATH",
]


def load_config(env_path: str | Path | None = None) -> Config:
    """Load configuration from environment variables.

    Loads a .env file if present (for local development), then validates
    that all required variables are set. Raises ValueError listing any
    missing variables.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [var for var in _REQUIRED_VARS if not os.environ.get(var)]
    if missing:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    return Config(
        # Required
        database_path=os.environ["DATABASE_PATH"],
        # Optional — Ingestion
        sources_config_path=os.environ.get("SOURCES_CONFIG_PATH", "./config/sources.json"),
        fetch_interval_minutes=int(os.environ.get("FETCH_INTERVAL_MINUTES", "30")),
        refresh_max_workers=int(os.environ.get("REFRESH_MAX_WORKERS", "4")),
        http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "20")),
        http_user_agent=os.environ.get("HTTP_USER_AGENT", "DevDashboard/1.0"),
        # Optional — Retention
        post_retention_days=int(os.environ.get("POST_RETENTION_DAYS", "30")),
        cleanup_schedule_cron=os.environ.get("CLEANUP_SCHEDULE_CRON", "0 4 * * *"),
        # Optional — Web
        web_host=os.environ.get("WEB_HOST", "0.0.0.0"),
        web_port=int(os.environ.get("WEB_PORT", "8080")),
        # Optional — Application
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_format=os.environ.get("LOG_FORMAT", "json"),
        app_env=os.environ.get("APP_ENV", "production"),
    )
