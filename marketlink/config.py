"""
Application configuration for marketlink.

This module provides a clean configuration interface using a frozen dataclass.
All magic numbers are imported from constants.py for easy modification.

Usage:
    from marketlink.config import config

    # Access configuration
    limit = config.rate_limit_per_minute

    # Derive a variant for tests
    fast = config.with_overrides(retry_base_delay=0.0)
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Tuple

from marketlink.constants import (
    # Rate limiting
    RATE_LIMIT_PER_MINUTE,
    RATE_WINDOW_SECONDS,
    WARNING_THRESHOLD_PCT,
    CRITICAL_THRESHOLD_PCT,
    HARD_LIMIT_PCT,
    THROTTLE_BASE_DELAY_SECONDS,
    THROTTLE_MAX_DELAY_SECONDS,
    RATE_LIMIT_COOLDOWN_SECONDS,
    # Retry
    MAX_RETRY_ATTEMPTS,
    INITIAL_RETRY_DELAY_SECONDS,
    MAX_RETRY_DELAY_SECONDS,
    # Cache
    QUOTE_CACHE_SECONDS,
    MARKET_OVERVIEW_CACHE_SECONDS,
    HISTORY_CACHE_SECONDS,
    FUNDAMENTALS_CACHE_SECONDS,
    NEWS_CACHE_SECONDS,
    DEFAULT_CACHE_DIR,
    QUOTE_DB_FILENAME,
    QUOTE_STALE_AFTER_HOURS,
    QUOTE_PURGE_AFTER_HOURS,
    # AI
    AI_REQUEST_TIMEOUT_SECONDS,
    AI_DEFAULT_TEMPERATURE,
    AI_DEFAULT_MAX_TOKENS,
    AI_FALLBACK_ORDER,
    DEFAULT_MODELS,
    FEATURE_SETTINGS,
)


@dataclass(frozen=True)
class Config:
    """
    Immutable application configuration.

    All values are set from constants.py defaults.
    The frozen=True ensures configuration cannot be accidentally modified at runtime.
    """

    # =========================================================================
    # Admission Control
    # =========================================================================
    rate_limit_per_minute: int = RATE_LIMIT_PER_MINUTE
    rate_window_seconds: float = RATE_WINDOW_SECONDS
    warning_threshold_pct: int = WARNING_THRESHOLD_PCT
    critical_threshold_pct: int = CRITICAL_THRESHOLD_PCT
    hard_limit_pct: int = HARD_LIMIT_PCT
    throttle_base_delay: float = THROTTLE_BASE_DELAY_SECONDS
    throttle_max_delay: float = THROTTLE_MAX_DELAY_SECONDS
    rate_limit_cooldown: float = RATE_LIMIT_COOLDOWN_SECONDS

    # =========================================================================
    # Retry
    # =========================================================================
    retry_max_attempts: int = MAX_RETRY_ATTEMPTS
    retry_base_delay: float = INITIAL_RETRY_DELAY_SECONDS
    retry_max_delay: float = MAX_RETRY_DELAY_SECONDS

    # =========================================================================
    # Cache Configuration
    # =========================================================================
    quote_ttl: float = QUOTE_CACHE_SECONDS
    market_overview_ttl: float = MARKET_OVERVIEW_CACHE_SECONDS
    history_ttl: float = HISTORY_CACHE_SECONDS
    fundamentals_ttl: float = FUNDAMENTALS_CACHE_SECONDS
    news_ttl: float = NEWS_CACHE_SECONDS
    cache_dir: str = DEFAULT_CACHE_DIR
    quote_db_filename: str = QUOTE_DB_FILENAME
    quote_stale_after_hours: float = QUOTE_STALE_AFTER_HOURS
    quote_purge_after_hours: float = QUOTE_PURGE_AFTER_HOURS

    # =========================================================================
    # AI Providers
    # =========================================================================
    ai_timeout_seconds: int = AI_REQUEST_TIMEOUT_SECONDS
    ai_default_temperature: float = AI_DEFAULT_TEMPERATURE
    ai_default_max_tokens: int = AI_DEFAULT_MAX_TOKENS
    ai_fallback_order: Tuple[str, ...] = AI_FALLBACK_ORDER
    ai_primary_provider: str = "groq"

    @property
    def quote_db_path(self) -> Path:
        """Location of the persistent quote cache."""
        return Path(self.cache_dir) / self.quote_db_filename

    @property
    def ttl_by_class(self) -> Dict[str, float]:
        """Ephemeral cache TTL (seconds) per operation class."""
        return {
            "quote": self.quote_ttl,
            "market_overview": self.market_overview_ttl,
            "history": self.history_ttl,
            "fundamentals": self.fundamentals_ttl,
            "news": self.news_ttl,
        }

    @property
    def default_models(self) -> Dict[str, str]:
        """Default model name per AI provider."""
        return DEFAULT_MODELS.copy()

    @property
    def feature_settings(self) -> Dict[str, Tuple[int, float]]:
        """(max_tokens, temperature) per AI feature."""
        return FEATURE_SETTINGS.copy()

    def with_overrides(self, **changes) -> "Config":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


# Global configuration instance
config = Config()
