from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./zenpoints.db"

    # Internal API security
    admin_api_key: str = ""

    # Memory game protocol
    game_signing_secret: SecretStr = SecretStr("change-me")
    memory_game_pairs: int = Field(9, ge=1, le=9)
    memory_game_session_lifetime_seconds: int = 300
    memory_game_min_seconds_per_pair: float = 1.0
    memory_game_cooldown_seconds: int = 24 * 60 * 60
    memory_game_win_points: int = 10
    memory_game_award_mode: Literal["flat", "tier_scaled"] = "flat"

    # Customer record store
    customer_store_timeout_seconds: float = 5.0

    # Zen points ledger
    loyalty_tier_thresholds: dict[str, int] = Field(
        default_factory=lambda: {"seed": 0, "sprout": 100, "blossom": 250, "lotus": 500}
    )
    loyalty_tier_discounts: dict[str, int] = Field(
        default_factory=lambda: {"seed": 0, "sprout": 5, "blossom": 10, "lotus": 15}
    )
    loyalty_cycle_days: int = 30
    loyalty_signup_bonus: int = 50
    loyalty_points_per_euro: float = 0.1

    # Cycle reconciliation
    reconciliation_page_size: int = 100
    reconciliation_max_pages: int = 10_000

    # Job scheduler
    job_scheduler_enabled: bool = False
    job_schedule_path: str = "config/schedules.toml"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
