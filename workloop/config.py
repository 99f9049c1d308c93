"""
Application configuration using Pydantic BaseSettings.

All configuration is loaded from environment variables (or a .env file).
Provides typed, validated access to the database, broker, mail transport,
document hosting and scheduling parameters.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for the WorkLoop weekly reporter."""

    # --- Storage ---
    database_url: str = Field(
        default="sqlite+aiosqlite:///./workloop.db",
        description="SQLAlchemy async database URL",
    )

    # --- Queue ---
    redis_url: str = Field(default="", description="Redis URL for the durable job broker (empty = in-process)")
    queue_max_retries: int = Field(default=3, ge=0, description="Broker retries before a job is dead-lettered")
    queue_min_backoff_ms: int = Field(default=15_000, ge=0, description="Delay before the first broker retry")
    queue_max_backoff_ms: int = Field(default=7 * 24 * 3600 * 1000, ge=0, description="Upper bound on the retry delay")

    # --- Email ---
    smtp_host: str = Field(default="", description="SMTP host (empty = localhost dev relay outside production)")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_username: str = Field(default="", description="SMTP username")
    smtp_password: str = Field(default="", description="SMTP password")
    smtp_start_tls: bool = Field(default=True, description="Upgrade the SMTP connection with STARTTLS")
    email_sender: str = Field(default='"WorkLoop Bot" <reports@workloop.dev>', description="From header")
    default_recipient: str = Field(default="client@example.com", description="Fallback report recipient")

    # --- Document hosting ---
    cloudinary_cloud_name: str = Field(default="", description="Cloudinary cloud name (empty = no upload)")
    cloudinary_api_key: str = Field(default="", description="Cloudinary API key")
    cloudinary_api_secret: str = Field(default="", description="Cloudinary API secret")
    upload_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout for report uploads")

    # --- Reports ---
    render_timeout_seconds: float = Field(default=60.0, gt=0, description="Upper bound for a single PDF render")
    report_window_days: int = Field(default=7, ge=1, description="Length of the report window in days")
    report_window_mode: Literal["rolling", "calendar"] = Field(
        default="rolling",
        description="rolling = now minus N days .. now, calendar = Monday-aligned week",
    )

    # --- Scheduler ---
    scheduler_enabled: bool = Field(default=False, description="Enqueue weekly reports on a cron schedule")
    report_day_of_week: str = Field(default="mon", description="Cron day of week for the weekly run")
    report_hour: int = Field(default=9, ge=0, le=23, description="Hour (24h) to generate weekly reports")
    report_minute: int = Field(default=0, ge=0, le=59, description="Minute to generate weekly reports")
    timezone: str = Field(default="UTC", description="IANA timezone for the scheduler and report dates")

    # --- App ---
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    app_env: str = Field(default="development", description="Running environment (development, production)")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def upload_enabled(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )


# Singleton, import this everywhere.
settings = Settings()


def load_settings_from_env() -> Settings:
    """
    (Re-)create the Settings singleton from current environment variables.

    Call this after changing ``os.environ`` (tests, worker bootstrap).
    """
    global settings
    settings = Settings()
    return settings
