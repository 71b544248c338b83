"""Server configuration derived from environment."""
from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings with defaults matching the shipped game setup."""

    model_config = ConfigDict(env_prefix="APP_")

    # Server
    debug: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # Settings store
    settings_backend: Literal["redis", "file", "mirrored"] = "redis"
    local_settings_path: str = "data/settings.json"
    remote_settings_url: str | None = None
    remote_settings_timeout_seconds: float = 10.0

    # Gameplay defaults
    default_winning_probability: float = 0.5
    legacy_lose_segment_ids: list[str] = ["2", "4", "6", "8"]

    # Shuffle board
    shuffle_slots: int = 9
    shuffle_auto_reshuffle: bool = True
    shuffle_reset_after_ms: int = 1500
    shuffle_lose_placeholder_label: str = "Try Again"

    # Spin wheel
    spin_extra_turns: int = 14

    # Admin limits (settings page slider and amount input)
    admin_min_probability: float = 0.10
    admin_max_probability: float = 0.90
    admin_max_prize_amount: int = 1000

    # Per-player round lock and round state persistence (Redis TTLs)
    lock_ttl_seconds: int = 30  # Auto-expire lock after 30s if process crashes
    settings_lock_wait_ms: int = 2000  # Wait for the shared settings lock before giving up
    settings_lock_retry_ms: int = 20
    round_state_ttl_seconds: int = 86400  # 24 hours


settings = Settings()
