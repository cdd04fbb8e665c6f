"""
Admission control for upstream API calls.

Tracks non-cached calls in a sliding 60-second window and slows down
best-effort work as usage approaches the provider's limit. Essential calls
(what the user is looking at right now) are never delayed.

Delay formula for non-essential calls once the window reaches the warning
threshold:

    delay = min(throttle_max_delay, throttle_base_delay * (1 + calls - warn_threshold))

i.e. linear in how many calls the window is past the threshold. After an
upstream 429 the delay is at least the remaining cooldown (same cap), and
should_throttle() stays true until the cooldown ends.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Tuple

from marketlink.config import Config, config as default_config
from marketlink.constants import REFRESH_MULTIPLIERS
from marketlink.core.stats import StatsCollector
from marketlink.core.timing import SystemClock
from marketlink.logging_config import get_logger

logger = get_logger(__name__)

STATUS_MESSAGES = {
    "ok": "API usage normal",
    "warning": "Approaching rate limit - requests slowing",
    "critical": "Near rate limit - heavy throttling active",
    "blocked": "At rate limit - non-essential requests heavily delayed",
}


class RateWindow:
    """Sliding window of call timestamps."""

    def __init__(self, window_seconds: float = 60.0, clock: Optional[Any] = None):
        self.window_seconds = window_seconds
        self.clock = clock or SystemClock()
        self._calls: Deque[Tuple[float, str]] = deque()

    def _prune(self) -> None:
        cutoff = self.clock.now() - self.window_seconds
        while self._calls and self._calls[0][0] <= cutoff:
            self._calls.popleft()

    def record(self, endpoint: str) -> None:
        self._calls.append((self.clock.now(), endpoint))

    def count(self) -> int:
        self._prune()
        return len(self._calls)

    def clear(self) -> None:
        self._calls.clear()


@dataclass(frozen=True)
class Admission:
    """Result of acquire(): proceed now (delay == 0) or after `delay` seconds."""

    delay: float = 0.0

    @property
    def immediate(self) -> bool:
        return self.delay <= 0


class AdmissionController:
    """
    Rate limiter with an essential/best-effort distinction.

    Example:
        admission = AdmissionController(stats=stats)
        ticket = admission.acquire(descriptor)
        if ticket.delay:
            await clock.sleep(ticket.delay)
        admission.record_call("quote")

        # Background pollers
        if admission.should_throttle():
            return  # skip this cycle
        interval = base_interval * admission.refresh_multiplier()
    """

    def __init__(
        self,
        stats: Optional[StatsCollector] = None,
        cfg: Config = default_config,
        clock: Optional[Any] = None,
    ):
        self.cfg = cfg
        self.clock = clock or SystemClock()
        self.stats = stats
        self.window = RateWindow(cfg.rate_window_seconds, clock=self.clock)
        self.limit = cfg.rate_limit_per_minute
        self.warn_threshold = math.ceil(self.limit * cfg.warning_threshold_pct / 100)
        self._cooldown_until = 0.0

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def record_call(self, endpoint: str) -> None:
        """Record one upstream (non-cached) call."""
        self.window.record(endpoint)

    def record_upstream_rate_limit(self, retry_after: Optional[float] = None) -> None:
        """
        Note a 429 from the provider.

        Best-effort calls are throttled until `retry_after` seconds from now
        (cfg.rate_limit_cooldown when the provider gave no hint), whatever
        the window count says.
        """
        cooldown = retry_after if retry_after and retry_after > 0 else self.cfg.rate_limit_cooldown
        self._cooldown_until = max(self._cooldown_until, self.clock.now() + cooldown)
        if self.stats is not None:
            self.stats.record_rate_limit_warning(remaining=0, reset_at=self._cooldown_until)
        logger.info("Upstream rate limit hit; throttling best-effort calls for %.1fs", cooldown)

    def cooldown_remaining(self) -> float:
        """Seconds left in the cooldown following the last upstream 429."""
        return max(0.0, self._cooldown_until - self.clock.now())

    def calls_last_minute(self) -> int:
        return self.window.count()

    def percent_used(self) -> int:
        return round(self.calls_last_minute() / self.limit * 100)

    def status(self) -> str:
        pct = self.percent_used()
        if pct >= self.cfg.hard_limit_pct:
            return "blocked"
        if pct >= self.cfg.critical_threshold_pct or self.cooldown_remaining() > 0:
            return "critical"
        if pct >= self.cfg.warning_threshold_pct:
            return "warning"
        return "ok"

    def should_throttle(self) -> bool:
        return self.calls_last_minute() >= self.warn_threshold or self.cooldown_remaining() > 0

    def throttle_delay(self) -> float:
        """Delay a non-essential call would get right now."""
        calls = self.calls_last_minute()
        delay = 0.0
        if calls >= self.warn_threshold:
            overage = calls - self.warn_threshold
            delay = self.cfg.throttle_base_delay * (1 + overage)
        # Wait out the provider's cooldown, up to the usual cap
        delay = max(delay, self.cooldown_remaining())
        return min(self.cfg.throttle_max_delay, delay)

    def refresh_multiplier(self) -> int:
        """Factor background pollers should stretch their interval by."""
        return REFRESH_MULTIPLIERS[self.status()]

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def acquire(self, descriptor: Any) -> Admission:
        """
        Decide when a call may proceed.

        Args:
            descriptor: Anything with `essential` and `operation_name` attributes

        Returns:
            Admission with delay 0 for essential calls or light load
        """
        if not self.should_throttle():
            return Admission()

        calls = self.calls_last_minute()
        if self.stats is not None:
            self.stats.record_rate_limit_warning(remaining=max(self.limit - calls, 0))

        if getattr(descriptor, "essential", False):
            return Admission()

        delay = self.throttle_delay()
        logger.debug(
            "Throttling %s by %.2fs (%d calls in window)",
            getattr(descriptor, "operation_name", "call"),
            delay,
            calls,
        )
        return Admission(delay=delay)

    def get_rate_limit_status(self) -> Dict[str, Any]:
        """Human-readable headroom report."""
        calls = self.calls_last_minute()
        status = self.status()
        return {
            "calls_per_minute": calls,
            "limit": self.limit,
            "remaining": max(self.limit - calls, 0),
            "percent_used": self.percent_used(),
            "status": status,
            "message": STATUS_MESSAGES[status],
            "cooldown_seconds": round(self.cooldown_remaining(), 1),
        }

    def optimal_batch_size(self, requested: int) -> int:
        """How many symbols a batch fetch should request right now."""
        remaining = self.limit - self.calls_last_minute()
        available = max(1, remaining // 2)
        status = self.status()
        if status == "blocked":
            return min(5, requested)
        if status == "critical":
            return min(10, requested)
        if status == "warning":
            return min(20, requested)
        return min(available, requested)

    def reset(self) -> None:
        self.window.clear()
        self._cooldown_until = 0.0
