"""
marketlink - Resilient external-data access for a terminal stock research app

Every outbound call goes through one layer providing:
- Admission control that slows best-effort calls near the provider's limit
- Deduplication of concurrent identical requests
- Two-tier caching (in-memory TTL + persistent SQLite quotes)
- Retry with exponential backoff over classified errors
- Cross-provider fallback for AI completions
- Usage stats for an operator status display
"""

__version__ = "1.0.0"

from marketlink.config import Config, config
from marketlink.logging_config import setup_logging, get_logger
from marketlink.core import (
    CallDescriptor,
    Gateway,
    ResilienceContext,
    RetryConfig,
    RetryEngine,
)
from marketlink.ai import AIClient, FallbackChain
from marketlink.market import MarketDataService

__all__ = [
    # Version
    "__version__",
    # Config
    "Config",
    "config",
    "setup_logging",
    "get_logger",
    # Core
    "CallDescriptor",
    "Gateway",
    "ResilienceContext",
    "RetryConfig",
    "RetryEngine",
    # Consumers
    "AIClient",
    "FallbackChain",
    "MarketDataService",
]
