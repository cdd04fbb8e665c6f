"""
Core resilience layer for marketlink.

This module provides the machinery every outbound call passes through:
- Error classification (ErrorClassifier and the error taxonomy)
- Caching (EphemeralCache, PersistentCache)
- Deduplication (Deduplicator)
- Rate limiting (AdmissionController)
- Retry logic (RetryEngine)
- Usage stats (StatsCollector)
- The Gateway façade composing all of the above
"""

from marketlink.core.cache import EphemeralCache
from marketlink.core.dedupe import Deduplicator
from marketlink.core.errors import (
    AuthError,
    ChainExhaustedError,
    Classification,
    ErrorClassifier,
    ExhaustedRetriesError,
    MarketLinkError,
    RateLimitError,
    ServerError,
    TransportError,
    UpstreamError,
    ValidationError,
    classify,
)
from marketlink.core.gateway import CallDescriptor, Gateway, ResilienceContext
from marketlink.core.persistent_cache import PersistentCache, PersistentEntry, SQLiteRowStore
from marketlink.core.rate_limit import Admission, AdmissionController
from marketlink.core.retry import DEFAULT_RETRY_CONFIG, NO_RETRY, RetryConfig, RetryEngine
from marketlink.core.stats import StatsCollector, StatsSummary
from marketlink.core.timing import SystemClock, Timer, VirtualClock

__all__ = [
    # Errors
    "MarketLinkError",
    "UpstreamError",
    "TransportError",
    "ServerError",
    "RateLimitError",
    "AuthError",
    "ValidationError",
    "ExhaustedRetriesError",
    "ChainExhaustedError",
    "Classification",
    "ErrorClassifier",
    "classify",
    # Cache
    "EphemeralCache",
    "PersistentCache",
    "PersistentEntry",
    "SQLiteRowStore",
    # Dedupe
    "Deduplicator",
    # Rate limiting
    "Admission",
    "AdmissionController",
    # Retry
    "RetryConfig",
    "RetryEngine",
    "DEFAULT_RETRY_CONFIG",
    "NO_RETRY",
    # Stats
    "StatsCollector",
    "StatsSummary",
    # Timing
    "SystemClock",
    "VirtualClock",
    "Timer",
    # Gateway
    "CallDescriptor",
    "Gateway",
    "ResilienceContext",
]
