"""Configuration for the study-partner engine using environment variables."""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Environment Variables:
        PARTNER_DB_PATH: Path to SQLite database (default: ./data/partner.db)
        PARTNER_LOG_LEVEL: Logging level (default: INFO)
        SUPABASE_JWT_SECRET: Secret used to verify caller access tokens
        SUPABASE_JWT_AUDIENCE: Expected token audience (default: authenticated)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database Configuration
    db_path: Path = Field(
        default=Path("./data/partner.db"),
        validation_alias="PARTNER_DB_PATH",
        description="Path to SQLite database",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias="PARTNER_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    # Authentication
    jwt_secret: str = Field(
        default="",
        validation_alias="SUPABASE_JWT_SECRET",
        description="HS256 secret for Supabase access tokens (required for auth)",
    )
    jwt_audience: str = Field(
        default="authenticated",
        validation_alias="SUPABASE_JWT_AUDIENCE",
        description="Audience claim expected on access tokens",
    )

    # Proactive suggestion heuristics
    min_ai_messages_between_asks: int = Field(
        default=3,
        ge=0,
        validation_alias="PARTNER_MIN_AI_MESSAGES_BETWEEN_ASKS",
        description="Assistant turns required after a proactive ask before the next one",
    )
    start_message_threshold: int = Field(
        default=2,
        ge=0,
        validation_alias="PARTNER_START_MESSAGE_THRESHOLD",
        description="Sessions with at most this many messages are in the START phase",
    )
    progress_check_minutes: int = Field(
        default=10,
        gt=0,
        validation_alias="PARTNER_PROGRESS_CHECK_MINUTES",
        description="Cadence of progress check-ins in elapsed session minutes",
    )
    progress_check_window_minutes: int = Field(
        default=2,
        gt=0,
        validation_alias="PARTNER_PROGRESS_CHECK_WINDOW_MINUTES",
        description="How long after each cadence mark a progress check may fire",
    )
    wrap_up_minutes: int = Field(
        default=45,
        gt=0,
        validation_alias="PARTNER_WRAP_UP_MINUTES",
        description="Elapsed minutes after which the session should wrap up",
    )
    idle_gap_minutes: int = Field(
        default=5,
        gt=0,
        validation_alias="PARTNER_IDLE_GAP_MINUTES",
        description="Minutes an assistant question may go unanswered before the learner counts as stuck",
    )
    recent_turn_window: int = Field(
        default=20,
        gt=0,
        validation_alias="PARTNER_RECENT_TURN_WINDOW",
        description="Number of most recent turns the suggestion engine reads",
    )

    # Expiry sweep
    stale_session_minutes: int = Field(
        default=240,
        gt=0,
        validation_alias="PARTNER_STALE_SESSION_MINUTES",
        description="Age after which an active session is eligible for expiry",
    )
    stale_idle_minutes: int = Field(
        default=30,
        gt=0,
        validation_alias="PARTNER_STALE_IDLE_MINUTES",
        description="Minutes without a turn before a stale session is expired",
    )

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        return getattr(logging, self.log_level.upper(), logging.INFO)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
