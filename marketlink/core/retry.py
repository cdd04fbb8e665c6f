"""
Retry utilities with exponential backoff.

Provides robust retry logic for unreliable API calls. Each attempt is turned
into a tagged outcome (Ok / RetryableFailure / TerminalFailure) and the loop
only switches on that tag.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from marketlink.constants import (
    INITIAL_RETRY_DELAY_SECONDS,
    MAX_RETRY_ATTEMPTS,
    MAX_RETRY_DELAY_SECONDS,
)
from marketlink.core.errors import (
    AttemptRecord,
    ErrorClassifier,
    Ok,
    RetryableFailure,
    TerminalFailure,
    default_classifier,
)
from marketlink.core.timing import SystemClock
from marketlink.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Outcome = Union[Ok, RetryableFailure, TerminalFailure]


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry policy for one call site.

    Attributes:
        max_attempts: Total tries including the first (1 = never retry)
        base_delay: Seconds; delay before attempt i is base_delay * 2**(i-1)
        max_delay: Cap on any single backoff sleep
        should_retry: Optional predicate that overrides the error classifier
    """

    max_attempts: int = MAX_RETRY_ATTEMPTS
    base_delay: float = INITIAL_RETRY_DELAY_SECONDS
    max_delay: float = MAX_RETRY_DELAY_SECONDS
    should_retry: Optional[Callable[[BaseException], bool]] = None

    def delay_before(self, attempt_number: int) -> float:
        """Backoff before the given (1-based) attempt; 0 for the first."""
        if attempt_number <= 1:
            return 0.0
        return min(self.base_delay * 2 ** (attempt_number - 1), self.max_delay)


DEFAULT_RETRY_CONFIG = RetryConfig()
NO_RETRY = RetryConfig(max_attempts=1)


class RetryEngine:
    """
    Runs an async call with retries on retryable failures.

    Example:
        engine = RetryEngine()
        quote = await engine.run(lambda: fetch_quote("AAPL"), RetryConfig(max_attempts=4))

        # Custom retry decision
        cfg = RetryConfig(should_retry=lambda e: isinstance(e, MyFlakyError))
        await engine.run(call, cfg)
    """

    def __init__(
        self,
        classifier: ErrorClassifier = default_classifier,
        clock: Optional[Any] = None,
    ):
        self.classifier = classifier
        self.clock = clock or SystemClock()

    async def _attempt(self, fn: Callable[[], Awaitable[T]], cfg: RetryConfig) -> Outcome:
        try:
            return Ok(await fn())
        except Exception as e:
            if cfg.should_retry is not None:
                if cfg.should_retry(e):
                    return RetryableFailure(e)
                return TerminalFailure(e)
            decision = self.classifier.classify(e)
            if decision.retryable:
                return RetryableFailure(e, rate_limited=decision.rate_limited)
            return TerminalFailure(e)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        cfg: RetryConfig = DEFAULT_RETRY_CONFIG,
        on_attempt: Optional[Callable[[AttemptRecord], None]] = None,
    ) -> T:
        """
        Call `fn` until it succeeds, fails terminally or attempts run out.

        Args:
            fn: Zero-argument coroutine function performing one upstream request
            cfg: Retry policy
            on_attempt: Called with an AttemptRecord after every attempt

        Returns:
            The first successful result

        Raises:
            The last error raised by `fn`, unchanged
        """
        if cfg.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {cfg.max_attempts}")

        attempt = 1
        delay = 0.0
        while True:
            outcome = await self._attempt(fn, cfg)
            record = AttemptRecord(attempt_number=attempt, delay_before_attempt=delay)

            if isinstance(outcome, Ok):
                if on_attempt:
                    on_attempt(record)
                if attempt > 1:
                    logger.debug("Succeeded on attempt %d/%d", attempt, cfg.max_attempts)
                return outcome.value

            record.error = outcome.error
            if on_attempt:
                on_attempt(record)

            if isinstance(outcome, TerminalFailure):
                logger.debug("Not retrying %s: %s", type(outcome.error).__name__, outcome.error)
                raise outcome.error

            if attempt >= cfg.max_attempts:
                logger.warning(
                    "All %d retry attempts failed: %s",
                    cfg.max_attempts,
                    str(outcome.error),
                )
                raise outcome.error

            attempt += 1
            delay = cfg.delay_before(attempt)
            logger.debug(
                "Attempt %d/%d failed%s: %s. Retrying in %.1fs...",
                attempt - 1,
                cfg.max_attempts,
                " (rate limited)" if outcome.rate_limited else "",
                str(outcome.error),
                delay,
            )
            await self.clock.sleep(delay)
