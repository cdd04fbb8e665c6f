"""
Centralized constants for marketlink.

All magic numbers and hardcoded values should be defined here.
This makes the codebase more maintainable and self-documenting.
"""

from typing import Final

# =============================================================================
# RATE LIMITING (Yahoo Finance unofficial limits)
# =============================================================================
RATE_LIMIT_PER_MINUTE: Final[int] = 100
RATE_WINDOW_SECONDS: Final[float] = 60.0
WARNING_THRESHOLD_PCT: Final[int] = 70  # Start slowing down
CRITICAL_THRESHOLD_PCT: Final[int] = 85  # Heavy throttling
HARD_LIMIT_PCT: Final[int] = 95  # Maximum delay for non-essential calls

# Admission delay: base * (1 + calls over warn threshold), capped
THROTTLE_BASE_DELAY_SECONDS: Final[float] = 0.1
THROTTLE_MAX_DELAY_SECONDS: Final[float] = 5.0

# Throttle window after an upstream 429 without a Retry-After hint
RATE_LIMIT_COOLDOWN_SECONDS: Final[float] = 30.0

# Poll interval multipliers per usage tier
REFRESH_MULTIPLIERS: Final[dict] = {
    "ok": 1,
    "warning": 2,
    "critical": 4,
    "blocked": 8,
}

# =============================================================================
# RETRY CONFIGURATION
# =============================================================================
MAX_RETRY_ATTEMPTS: Final[int] = 3
INITIAL_RETRY_DELAY_SECONDS: Final[float] = 1.0
MAX_RETRY_DELAY_SECONDS: Final[float] = 10.0

# =============================================================================
# CACHE CONFIGURATION
# =============================================================================
QUOTE_CACHE_SECONDS: Final[float] = 10.0
MARKET_OVERVIEW_CACHE_SECONDS: Final[float] = 15.0
HISTORY_CACHE_SECONDS: Final[float] = 5 * 60.0
FUNDAMENTALS_CACHE_SECONDS: Final[float] = 60 * 60.0
NEWS_CACHE_SECONDS: Final[float] = 60.0

DEFAULT_CACHE_DIR: Final[str] = "data/cache"
QUOTE_DB_FILENAME: Final[str] = "quotes.db"
QUOTE_STALE_AFTER_HOURS: Final[float] = 4.0
QUOTE_PURGE_AFTER_HOURS: Final[float] = 24.0

# =============================================================================
# STATS
# =============================================================================
MAX_RECENT_CALLS: Final[int] = 50
MAX_RECENT_ERRORS: Final[int] = 20
SUMMARY_TOP_ENDPOINTS: Final[int] = 5
SUMMARY_RECENT_ERRORS: Final[int] = 5
SUMMARY_ERROR_MESSAGE_CHARS: Final[int] = 50

# =============================================================================
# AI PROVIDERS
# =============================================================================
AI_REQUEST_TIMEOUT_SECONDS: Final[int] = 60
AI_DEFAULT_TEMPERATURE: Final[float] = 0.3
AI_DEFAULT_MAX_TOKENS: Final[int] = 1024
AI_FALLBACK_ORDER: Final[tuple] = ("groq", "openai", "anthropic", "ollama")
DEFAULT_OLLAMA_URL: Final[str] = "http://localhost:11434"

GROQ_BASE_URL: Final[str] = "https://api.groq.com/openai/v1"
OPENAI_BASE_URL: Final[str] = "https://api.openai.com/v1"
ANTHROPIC_BASE_URL: Final[str] = "https://api.anthropic.com/v1"
ANTHROPIC_API_VERSION: Final[str] = "2023-06-01"

DEFAULT_MODELS: Final[dict] = {
    "groq": "llama-3.3-70b-versatile",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "ollama": "llama3.1",
}

# Per-feature completion settings: (max_tokens, temperature)
FEATURE_SETTINGS: Final[dict] = {
    "research": (2000, 0.3),
    "quick": (400, 0.3),
    "chat": (1024, 0.7),
    "summary": (512, 0.3),
    "filing": (1500, 0.3),
}

# =============================================================================
# MARKET DATA
# =============================================================================
MARKET_INDICES: Final[dict] = {
    "^GSPC": "S&P 500",
    "^DJI": "Dow Jones",
    "^IXIC": "Nasdaq",
    "^RUT": "Russell 2000",
    "^VIX": "VIX",
}
DEFAULT_HISTORY_PERIOD: Final[str] = "1y"
DEFAULT_HISTORY_INTERVAL: Final[str] = "1d"
MAX_NEWS_ITEMS: Final[int] = 10
