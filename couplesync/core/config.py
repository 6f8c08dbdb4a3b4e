"""Configuration management for couplesync."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite Configuration
    sqlite_db_path: str = Field(default="./data/couplesync.db", description="Path to the SQLite database file")

    # Pydantic Logfire Configuration (optional)
    logfire_token: str | None = Field(default=None, description="Pydantic Logfire token for observability")
    environment: str = Field(default="development", description="Deployment environment name")

    # Recurrence Configuration
    default_timezone: str = Field(
        default="UTC", description="IANA timezone used when a recurrence does not carry its own"
    )

    # Reminder Configuration
    enable_overdue_reminders: bool = Field(default=True, description="Enable/disable the overdue task reminder job")
    overdue_reminder_hour: int = Field(default=8, description="Hour of day (UTC) at which overdue reminders run")

    @field_validator("overdue_reminder_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate reminder hour is a valid hour of day."""
        if not 0 <= v <= 23:  # noqa: PLR2004
            msg = "overdue_reminder_hour must be between 0 and 23"
            raise ValueError(msg)
        return v

    @property
    def is_production(self) -> bool:
        """Whether the app runs in production."""
        return self.environment.lower() == "production"


# Application Constants
class Constants:
    """Application-wide constants."""

    # HTTP Status Codes
    HTTP_OK: int = 200
    HTTP_BAD_REQUEST: int = 400
    HTTP_NOT_FOUND: int = 404
    HTTP_CONFLICT: int = 409
    HTTP_SERVER_ERROR: int = 500

    # Recurrence
    MAX_RECURRENCE_INTERVAL: int = 1000  # Upper bound for "every N units"
    BIWEEKLY_WEEKS: int = 2
    QUARTER_MONTHS: int = 3
    MAX_EXPANDED_OCCURRENCES: int = 366  # Cap for occurrence expansion within a window

    # Pagination Defaults
    DEFAULT_PER_PAGE_LIMIT: int = 100  # Default pagination limit for list queries

    # Job Tracker Configuration
    TRACKER_DEAD_LETTER_QUEUE_MAXLEN: int = 100  # Max items in dead letter queue
    JOB_MAX_RETRIES: int = 3
    JOB_RETRY_BASE_DELAY_SECONDS: float = 2.0


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
constants = Constants()
