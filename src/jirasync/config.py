from dataclasses import dataclass
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    jira_base_url: str = ""
    jira_api_token: str = ""
    jira_timeout_seconds: float = 30.0
    telegram_bot_token: str = ""
    telegram_alert_chat_id: Optional[int] = None
    database_url: str = "sqlite:///./jirasync.db"
    sync_cron: str = "0 * * * *"  # top of every hour

    # Engine tuning
    sync_batch_size: int = 100
    sync_memory_efficient_processing: bool = True
    sync_progress_logging_enabled: bool = True
    sync_progress_logging_interval: int = 10
    sync_memory_release_interval: int = 5
    sync_performance_monitoring_enabled: bool = True
    sync_page_size: int = 50
    sync_max_attempts: int = 3
    sync_backoff_base_delay: float = 30.0
    sync_backoff_max_delay: float = 120.0
    sync_backoff_multiplier: float = 2.0
    sync_default_retry_after: float = 60.0


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


@dataclass(frozen=True)
class SyncConfig:
    """Immutable engine options, built once and handed to every component.

    Attributes:
        batch_size: Item count above which a query's results are processed in chunks.
        memory_efficient_processing: Enables chunked processing and gc hints.
        progress_logging_enabled: Emit progress details while chunking.
        progress_logging_interval: Emit progress every N chunks.
        memory_release_interval: Hint the collector every M chunks.
        performance_monitoring_enabled: Log per-query throughput.
        page_size: maxResults sent with each search request.
        max_attempts: Total attempts per page fetch (first call included).
        backoff_base_delay: First transient backoff in seconds.
        backoff_max_delay: Upper bound for a single transient backoff.
        backoff_multiplier: Growth factor between transient backoffs.
        default_retry_after: Wait used when a 429 carries no usable hint.
    """

    batch_size: int = 100
    memory_efficient_processing: bool = True
    progress_logging_enabled: bool = True
    progress_logging_interval: int = 10
    memory_release_interval: int = 5
    performance_monitoring_enabled: bool = True
    page_size: int = 50
    max_attempts: int = 3
    backoff_base_delay: float = 30.0
    backoff_max_delay: float = 120.0
    backoff_multiplier: float = 2.0
    default_retry_after: float = 60.0

    def __post_init__(self) -> None:
        for name in (
            "batch_size",
            "progress_logging_interval",
            "memory_release_interval",
            "page_size",
            "max_attempts",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        for name in ("backoff_base_delay", "backoff_max_delay", "default_retry_after"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            batch_size=settings.sync_batch_size,
            memory_efficient_processing=settings.sync_memory_efficient_processing,
            progress_logging_enabled=settings.sync_progress_logging_enabled,
            progress_logging_interval=settings.sync_progress_logging_interval,
            memory_release_interval=settings.sync_memory_release_interval,
            performance_monitoring_enabled=settings.sync_performance_monitoring_enabled,
            page_size=settings.sync_page_size,
            max_attempts=settings.sync_max_attempts,
            backoff_base_delay=settings.sync_backoff_base_delay,
            backoff_max_delay=settings.sync_backoff_max_delay,
            backoff_multiplier=settings.sync_backoff_multiplier,
            default_retry_after=settings.sync_default_retry_after,
        )
