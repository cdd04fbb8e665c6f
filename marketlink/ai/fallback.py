"""
Provider fallback for AI completions.

The request is retried against the first available provider; once that
provider's retries are exhausted (or it fails terminally) the chain moves to
the next one. Escalation crosses providers, never cache layers.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from marketlink.core.errors import ChainExhaustedError, ExhaustedRetriesError
from marketlink.core.retry import RetryConfig, RetryEngine
from marketlink.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def build_provider_order(primary: str, fallback_order: Sequence[str]) -> List[str]:
    """Primary provider first, then the rest of the fallback order without repeats."""
    order = [primary]
    for name in fallback_order:
        if name not in order:
            order.append(name)
    return order


class FallbackChain:
    """
    Ordered list of independently rate-limited providers.

    Example:
        chain = FallbackChain([groq, openai, anthropic])
        response = await chain.run(lambda p: p.complete(request))
    """

    def __init__(
        self,
        providers: Sequence[Any],
        retry_engine: Optional[RetryEngine] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        """
        Args:
            providers: Objects with `name` and `is_available()`, tried in order
            retry_engine: Engine used per provider (fresh one if omitted)
            retry_config: Retry policy applied to each provider
        """
        self.providers = list(providers)
        self.retry_engine = retry_engine or RetryEngine()
        self.retry_config = retry_config or RetryConfig()
        # Provider failures from the most recent run, kept when a later provider succeeds
        self.last_failures: List[ExhaustedRetriesError] = []

    def available(self) -> List[Any]:
        return [p for p in self.providers if p.is_available()]

    async def run(self, call: Callable[[Any], Awaitable[T]]) -> T:
        """
        Run `call(provider)` against each available provider until one succeeds.

        Raises:
            ChainExhaustedError: every available provider failed, or none was available
        """
        failures: List[ExhaustedRetriesError] = []
        skipped: List[str] = []
        self.last_failures = failures

        for provider in self.providers:
            if not provider.is_available():
                skipped.append(provider.name)
                logger.debug("Skipping %s: not configured", provider.name)
                continue

            attempts = 0

            def count_attempt(_record: Any) -> None:
                nonlocal attempts
                attempts += 1

            try:
                result = await self.retry_engine.run(
                    lambda: call(provider),
                    self.retry_config,
                    on_attempt=count_attempt,
                )
            except Exception as e:
                failures.append(ExhaustedRetriesError(provider.name, attempts, e))
                logger.warning("AI provider %s failed, trying next: %s", provider.name, e)
                continue

            if failures:
                logger.info("AI request served by fallback provider %s", provider.name)
            return result

        raise ChainExhaustedError(failures, skipped=skipped)
