"""
deckguard/config.py — Pydantic BaseSettings configuration
All guard tunables live here: windows, cooldowns, caps, field bounds,
fuzzy-match threshold, report-to-hide threshold and deck cadence.
Values are read once per process; restart to change them.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"

    # ── Storage ───────────────────────────────────────────────────────────────
    database_url: str = "sqlite:///./deckguard.db"
    database_echo: bool = False

    # ── Admin authentication ──────────────────────────────────────────────────
    admin_api_key: Optional[str] = None
    admin_user: Optional[str] = None
    admin_pass: Optional[str] = None

    # ── Rate-limit housekeeping ───────────────────────────────────────────────
    # Prune sweep runs at most once per interval per scope
    cleanup_interval_seconds: int = 5 * 60

    # ── Community submissions ─────────────────────────────────────────────────
    submission_max_per_day: int = 5
    submission_cooldown_seconds: int = 30
    submission_window_seconds: int = 24 * 60 * 60
    submission_min_elapsed_ms: int = 1500
    submission_dedupe_window_seconds: int = 24 * 60 * 60
    submission_name_min: int = 3
    submission_name_max: int = 80
    submission_description_min: int = 10
    submission_description_max: int = 500
    allowed_categories: list[str] = [
        "Learning",
        "Community",
        "Prayer",
        "Content",
        "Other",
    ]

    # ── Reports ───────────────────────────────────────────────────────────────
    report_max_per_day: int = 10
    report_cooldown_seconds: int = 15
    report_window_seconds: int = 24 * 60 * 60
    report_dedupe_window_seconds: int = 24 * 60 * 60
    # A single report hides the item pending review
    report_hide_threshold: int = 1

    # ── Waitlist ──────────────────────────────────────────────────────────────
    waitlist_max_per_day: int = 10
    waitlist_cooldown_seconds: int = 15
    waitlist_window_seconds: int = 24 * 60 * 60
    waitlist_min_elapsed_ms: int = 600
    waitlist_email_max: int = 254

    # ── Profanity detector ────────────────────────────────────────────────────
    fuzzy_match_threshold: float = 0.78
    fuzzy_min_length: int = 4
    fuzzy_max_length: int = 12
    substring_min_length: int = 4
    candidate_max_window: int = 6
    candidate_max_combined_length: int = 20

    # ── Deck scheduling ───────────────────────────────────────────────────────
    community_recent_days: int = 7
    community_batch_size: int = 20
    community_list_max: int = 50
    community_slot_step: int = 2
    rotation_cycle: int = 3
    min_community_weight: float = 0.05

    # ── Coarse per-route limits (slowapi) ────────────────────────────────────
    rate_limit_storage_uri: str = "memory://"
    route_limits: dict[str, str] = {
        "submit": "20/minute",
        "report": "30/minute",
        "waitlist": "20/minute",
        "read": "120/minute",
        "admin": "60/minute",
    }

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("report_hide_threshold", "submission_max_per_day", "report_max_per_day")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
