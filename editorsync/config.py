"""editorsync configuration — Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WATCH_MODES = ("push", "pull", "auto")

# Names the editor API historically used for the same modes
_MODE_ALIASES = {"sse": "push", "poll": "pull"}


class Settings(BaseSettings):
    """Engine settings for one remote editor workspace."""

    app_name: str = "editorsync"
    log_level: str = "INFO"

    # Remote File Service
    service_url: str = "http://localhost:3000"
    api_prefix: str = "/api/editor"
    request_timeout: float = 10.0  # seconds per request, push stream excluded

    # Change transport
    watch_path: str = "/"
    watch_mode: str = "auto"
    poll_interval_ms: int = 3000

    # Tree cache
    tree_depth: int | None = None
    include_hidden: bool = False

    # File sessions
    autosave: bool = False
    autosave_delay_ms: int = 1000

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="EDITORSYNC_",
        extra="ignore",
    )

    @field_validator("watch_mode", mode="before")
    @classmethod
    def normalize_watch_mode(cls, value: str) -> str:
        mode = str(value).strip().lower()
        mode = _MODE_ALIASES.get(mode, mode)
        if mode not in WATCH_MODES:
            raise ValueError(f"watch_mode must be one of {WATCH_MODES}, got {value!r}")
        return mode

    @field_validator("poll_interval_ms", "autosave_delay_ms")
    @classmethod
    def positive_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("intervals must be positive milliseconds")
        return value

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    @property
    def autosave_delay_seconds(self) -> float:
        return self.autosave_delay_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
