"""
EmoSense - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and environment-specific values are loaded from environment variables.
"""

from functools import lru_cache
from typing import FrozenSet, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_HIGH_RISK_PHRASES: List[str] = [
    "hurt myself",
    "kill myself",
    "end my life",
    "want to die",
    "suicide",
    "ending it all",
    "overdose",
    "self harm",
    "cut myself",
]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Hierarchy (highest to lowest priority):
    1. Environment variables
    2. .env file
    3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: str = "development"
    app_debug: bool = True
    app_log_level: str = "INFO"
    log_json: bool = False

    # --- Server ---
    backend_host: str = "0.0.0.0"
    backend_port: int = 8000

    # --- Classifier Selection ---
    # "gemini" = remote Gemini generateContent call (requires GEMINI_API_KEY)
    # "dummy" = keyword heuristic, no network (development/testing)
    classifier_backend: str = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash-latest"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    # None = no client-side timeout; callers needing bounded latency set one
    classifier_timeout_seconds: Optional[float] = None

    # --- Session Behaviour ---
    history_size: int = 3
    high_risk_phrases: List[str] = DEFAULT_HIGH_RISK_PHRASES
    quit_sentinel: str = "quit"
    quit_case_sensitive: bool = True
    # None = re-prompt until the user picks an option
    escalation_max_attempts: Optional[int] = None
    max_sessions: int = 1000
    # Sessions with no turn or escalation choice for this long are evicted
    session_ttl_minutes: int = 60
    session_cleanup_interval_seconds: int = 60

    # --- Privacy ---
    anonymize_logs: bool = True  # If True, logs never contain user text

    # --- Security ---
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated origins into list."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def high_risk_phrase_set(self) -> FrozenSet[str]:
        """Immutable, normalized view of the configured phrase list."""
        return frozenset(p.strip().lower() for p in self.high_risk_phrases if p.strip())

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance.

    Use dependency injection in routes:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
