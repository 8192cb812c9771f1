from typing import Optional

from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised when a required setting (e.g. the database URL) is missing."""


class Settings(BaseSettings):
    database_url: str = "sqlite:///./punchlog.db"
    mirror_webhook_url: str = ""  # spreadsheet Apps Script endpoint; empty disables mirroring
    timezone: str = "UTC"  # reference zone for day keys and mirror clock times
    edit_lock_minutes: int = 60
    adapter_timeout_seconds: float = 10.0
    mirror_timeout_seconds: float = 10.0
    primary_write_attempts: int = 3
    retry_backoff_seconds: float = 0.5
    day_complete_delay_ms: int = 800

    class Config:
        env_prefix = "PUNCHLOG_"
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
