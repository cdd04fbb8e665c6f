"""
API usage statistics.

Tracks calls, cache hits, errors and rate-limit warnings for one session for
an operator status display. Admission control feeds the warnings (including
the reset time after an upstream 429); it keeps its own call window.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from marketlink.constants import (
    MAX_RECENT_CALLS,
    MAX_RECENT_ERRORS,
    SUMMARY_ERROR_MESSAGE_CHARS,
    SUMMARY_RECENT_ERRORS,
    SUMMARY_TOP_ENDPOINTS,
)
from marketlink.core.timing import SystemClock
from marketlink.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ApiCallRecord:
    endpoint: str
    timestamp: float
    cached: bool
    duration: Optional[float] = None


@dataclass
class ErrorRecord:
    message: str
    timestamp: float
    category: str = "unknown"


@dataclass
class StatsSnapshot:
    """Point-in-time copy of the collector's counters."""

    session_start: float
    total_calls: int
    cached_calls: int
    per_endpoint_counts: Dict[str, int]
    recent_calls: List[ApiCallRecord]
    total_errors: int
    recent_errors: List[ErrorRecord]
    rate_limit_warnings: int
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset_at: Optional[float] = None


@dataclass
class StatsSummary:
    """Operator-facing digest of a StatsSnapshot."""

    session_duration: str
    total_calls: int
    cached_calls: int
    cache_hit_rate: str
    calls_per_minute: int
    top_endpoints: List[Dict[str, Any]] = field(default_factory=list)
    recent_errors: List[Dict[str, str]] = field(default_factory=list)
    rate_limit_warnings: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "session_duration": self.session_duration,
            "total_calls": self.total_calls,
            "cached_calls": self.cached_calls,
            "cache_hit_rate": self.cache_hit_rate,
            "calls_per_minute": self.calls_per_minute,
            "top_endpoints": list(self.top_endpoints),
            "recent_errors": list(self.recent_errors),
            "rate_limit_warnings": self.rate_limit_warnings,
        }


def format_duration(seconds: float) -> str:
    """Render a duration as '1h 5m', '3m 20s' or '12s'."""
    total = int(max(seconds, 0))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class StatsCollector:
    """
    Session-scoped API usage counters.

    Example:
        stats = StatsCollector()
        stats.record_call("quote", duration=0.12)
        stats.record_cache_hit("quote")
        print(stats.summary().cache_hit_rate)  # "50.0%"
    """

    def __init__(self, clock: Optional[Any] = None):
        self.clock = clock or SystemClock()
        self.reset()

    def reset(self) -> None:
        """Clear all counters and restart the session (test hook)."""
        self.session_start = self.clock.now()
        self.total_calls = 0
        self.cached_calls = 0
        self.by_endpoint: Dict[str, int] = {}
        self.recent_calls: Deque[ApiCallRecord] = deque(maxlen=MAX_RECENT_CALLS)
        self.total_errors = 0
        self.recent_errors: Deque[ErrorRecord] = deque(maxlen=MAX_RECENT_ERRORS)
        self.rate_limit_warnings = 0
        self.rate_limit_remaining: Optional[int] = None
        self.rate_limit_reset_at: Optional[float] = None

    def record_call(self, endpoint: str, cached: bool = False, duration: Optional[float] = None) -> None:
        """Record one API call (upstream or served from cache)."""
        key = endpoint.split("?", 1)[0]
        self.total_calls += 1
        if cached:
            self.cached_calls += 1
        self.by_endpoint[key] = self.by_endpoint.get(key, 0) + 1
        self.recent_calls.append(
            ApiCallRecord(endpoint=key, timestamp=self.clock.now(), cached=cached, duration=duration)
        )

    def record_cache_hit(self, endpoint: str) -> None:
        self.record_call(endpoint, cached=True)

    def record_rate_limit_warning(
        self,
        remaining: Optional[int] = None,
        reset_at: Optional[float] = None,
    ) -> None:
        self.rate_limit_warnings += 1
        logger.debug("Rate limit warning #%d (remaining=%s)", self.rate_limit_warnings, remaining)
        if remaining is not None:
            self.rate_limit_remaining = remaining
        if reset_at is not None:
            self.rate_limit_reset_at = reset_at

    def record_error(self, message: str, category: str = "unknown") -> None:
        self.total_errors += 1
        self.recent_errors.append(ErrorRecord(message=message, timestamp=self.clock.now(), category=category))

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            session_start=self.session_start,
            total_calls=self.total_calls,
            cached_calls=self.cached_calls,
            per_endpoint_counts=dict(self.by_endpoint),
            recent_calls=list(self.recent_calls),
            total_errors=self.total_errors,
            recent_errors=list(self.recent_errors),
            rate_limit_warnings=self.rate_limit_warnings,
            rate_limit_remaining=self.rate_limit_remaining,
            rate_limit_reset_at=self.rate_limit_reset_at,
        )

    def summary(self) -> StatsSummary:
        """Formatted digest for a status display."""
        now = self.clock.now()
        session_seconds = now - self.session_start
        session_minutes = session_seconds / 60.0

        if self.total_calls > 0:
            cache_hit_rate = f"{self.cached_calls / self.total_calls * 100:.1f}%"
        else:
            cache_hit_rate = "N/A"

        if session_minutes > 0:
            calls_per_minute = round(self.total_calls / session_minutes)
        else:
            calls_per_minute = self.total_calls

        top = sorted(self.by_endpoint.items(), key=lambda item: item[1], reverse=True)
        top_endpoints = [{"endpoint": name, "count": count} for name, count in top[:SUMMARY_TOP_ENDPOINTS]]

        recent_errors = []
        for record in list(self.recent_errors)[-SUMMARY_RECENT_ERRORS:]:
            ago_minutes = int((now - record.timestamp) // 60)
            recent_errors.append({
                "message": record.message[:SUMMARY_ERROR_MESSAGE_CHARS],
                "ago": f"{ago_minutes}m ago" if ago_minutes > 0 else "just now",
            })

        return StatsSummary(
            session_duration=format_duration(session_seconds),
            total_calls=self.total_calls,
            cached_calls=self.cached_calls,
            cache_hit_rate=cache_hit_rate,
            calls_per_minute=calls_per_minute,
            top_endpoints=top_endpoints,
            recent_errors=recent_errors,
            rate_limit_warnings=self.rate_limit_warnings,
        )
