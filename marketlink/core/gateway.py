"""
Gateway: the single entry point for outbound data calls.

Per call, in order:

    EphemeralCache lookup
      -> Deduplicator (dedupe_key)
        -> AdmissionController.acquire
          -> RetryEngine.run(tracked upstream attempt)
            -> stats recording informed by the ErrorClassifier

Successful results are written through to the ephemeral cache with the TTL of
their operation class; quotes are also persisted. A terminal failure is only
replaced by persisted data when the call site sets serve_stale_on_failure.
That choice is made per caller, outside the deduplicated call, so joining a
shared call never inherits another caller's stale policy.

Upstream 429s are fed back to the AdmissionController, which throttles
best-effort calls for the cooldown that follows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from marketlink.config import Config, config as default_config
from marketlink.core.cache import EphemeralCache
from marketlink.core.dedupe import Deduplicator
from marketlink.core.errors import ErrorClassifier, default_classifier
from marketlink.core.persistent_cache import PersistentCache, PersistentEntry, SQLiteRowStore
from marketlink.core.rate_limit import AdmissionController
from marketlink.core.retry import RetryConfig, RetryEngine
from marketlink.core.stats import StatsCollector, StatsSummary
from marketlink.core.timing import SystemClock, Timer
from marketlink.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Operation classes with an ephemeral TTL
QUOTE = "quote"
MARKET_OVERVIEW = "market_overview"
HISTORY = "history"
FUNDAMENTALS = "fundamentals"
NEWS = "news"

# Operation classes whose results are also written to the persistent cache
PERSISTED_CLASSES = frozenset({QUOTE})


@dataclass(frozen=True)
class CallDescriptor:
    """Immutable description of one call site's resilience policy."""

    operation_name: str
    dedupe_key: Optional[str] = None
    essential: bool = False
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    cache_class: Optional[str] = None
    serve_stale_on_failure: bool = False

    @property
    def cache_key(self) -> Optional[str]:
        """Key shared by the ephemeral and persistent caches."""
        if self.cache_class is None or not self.dedupe_key:
            return None
        return self.dedupe_key


@dataclass
class ResilienceContext:
    """
    Everything a Gateway mutates, owned explicitly instead of module globals.

    Each test builds its own with ResilienceContext.create(...).
    """

    config: Config
    clock: Any
    stats: StatsCollector
    cache: EphemeralCache
    admission: AdmissionController
    deduplicator: Deduplicator
    retry: RetryEngine
    classifier: ErrorClassifier = default_classifier
    persistent: Optional[PersistentCache] = None

    @classmethod
    def create(
        cls,
        cfg: Config = default_config,
        clock: Optional[Any] = None,
        persistent: Optional[PersistentCache] = None,
        classifier: ErrorClassifier = default_classifier,
    ) -> "ResilienceContext":
        clock = clock or SystemClock()
        stats = StatsCollector(clock=clock)
        return cls(
            config=cfg,
            clock=clock,
            stats=stats,
            cache=EphemeralCache(clock=clock),
            admission=AdmissionController(stats=stats, cfg=cfg, clock=clock),
            deduplicator=Deduplicator(),
            retry=RetryEngine(classifier=classifier, clock=clock),
            classifier=classifier,
            persistent=persistent,
        )

    @classmethod
    def with_quote_store(cls, cfg: Config = default_config, clock: Optional[Any] = None) -> "ResilienceContext":
        """Context whose persistent cache lives at cfg.quote_db_path."""
        clock = clock or SystemClock()
        persistent = PersistentCache(
            SQLiteRowStore(cfg.quote_db_path),
            stale_after=cfg.quote_stale_after_hours * 3600,
            clock=clock,
        )
        return cls.create(cfg, clock=clock, persistent=persistent)


class Gateway:
    """
    Façade composing caching, deduplication, admission control and retries.

    Example:
        gateway = Gateway(ResilienceContext.create())
        quote = await gateway.call(
            "quote",
            lambda: fetch_quote("AAPL"),
            essential=True,
            dedupe_key="quote:AAPL",
            cache_class="quote",
        )
    """

    def __init__(self, context: Optional[ResilienceContext] = None):
        self.context = context or ResilienceContext.create()
        self._ttl_by_class: Dict[str, float] = self.context.config.ttl_by_class

    def default_retry_config(self) -> RetryConfig:
        cfg = self.context.config
        return RetryConfig(
            max_attempts=cfg.retry_max_attempts,
            base_delay=cfg.retry_base_delay,
            max_delay=cfg.retry_max_delay,
        )

    async def call(
        self,
        operation_name: str,
        fn: Callable[[], Awaitable[T]],
        *,
        essential: bool = False,
        dedupe_key: Optional[str] = None,
        cache_class: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        serve_stale_on_failure: bool = False,
    ) -> T:
        """
        Perform one logical upstream call.

        Args:
            operation_name: Endpoint label used for stats and logs
            fn: Zero-argument coroutine function doing exactly one upstream request
            essential: Exempt from admission-control delay
            dedupe_key: Collapses concurrent identical calls; also the cache key
            cache_class: Operation class selecting the cache TTL (None = no caching)
            retry_config: Overrides the configured retry policy
            serve_stale_on_failure: Return persisted data instead of raising

        Returns:
            The call's result, possibly from cache
        """
        descriptor = CallDescriptor(
            operation_name=operation_name,
            dedupe_key=dedupe_key,
            essential=essential,
            retry_config=retry_config or self.default_retry_config(),
            cache_class=cache_class,
            serve_stale_on_failure=serve_stale_on_failure,
        )
        return await self.execute(descriptor, fn)

    async def execute(self, descriptor: CallDescriptor, fn: Callable[[], Awaitable[T]]) -> T:
        ctx = self.context
        cache_key = descriptor.cache_key
        if cache_key is not None:
            cached = ctx.cache.get(cache_key)
            if cached is not None:
                ctx.stats.record_cache_hit(descriptor.operation_name)
                return cached

        try:
            return await ctx.deduplicator.dedupe(
                descriptor.dedupe_key,
                lambda: self._admit_and_run(descriptor, fn),
            )
        except Exception as e:
            # Per caller: joiners of a shared call each apply their own stale policy
            return self._serve_stale_or_raise(descriptor, e)

    async def _admit_and_run(self, descriptor: CallDescriptor, fn: Callable[[], Awaitable[T]]) -> T:
        ctx = self.context
        admission = ctx.admission.acquire(descriptor)
        if not admission.immediate:
            await ctx.clock.sleep(admission.delay)

        try:
            result = await ctx.retry.run(lambda: self._tracked(descriptor, fn), descriptor.retry_config)
        except Exception as e:
            ctx.stats.record_error(str(e) or type(e).__name__, category=ctx.classifier.describe(e))
            raise

        self._write_through(descriptor, result)
        return result

    async def _tracked(self, descriptor: CallDescriptor, fn: Callable[[], Awaitable[T]]) -> T:
        """One upstream attempt, counted against the rate window and stats."""
        ctx = self.context
        ctx.admission.record_call(descriptor.operation_name)
        timer = Timer(descriptor.dedupe_key or descriptor.operation_name, ctx.clock)
        try:
            with timer:
                result = await fn()
        except Exception as e:
            decision = ctx.classifier.classify(e)
            ctx.stats.record_call(descriptor.operation_name, duration=timer.elapsed)
            if decision.rate_limited:
                ctx.admission.record_upstream_rate_limit(getattr(e, "retry_after", None))
            raise
        ctx.stats.record_call(descriptor.operation_name, duration=timer.elapsed)
        return result

    def _write_through(self, descriptor: CallDescriptor, result: Any) -> None:
        ctx = self.context
        cache_key = descriptor.cache_key
        if cache_key is None or result is None:
            return
        ttl = self._ttl_by_class.get(descriptor.cache_class)
        if ttl is not None:
            ctx.cache.set(cache_key, result, ttl)
        if ctx.persistent is not None and descriptor.cache_class in PERSISTED_CLASSES:
            try:
                ctx.persistent.write(cache_key, result)
            except (TypeError, ValueError, OSError) as e:
                logger.warning("Failed to persist %s: %s", cache_key, e)

    def _serve_stale_or_raise(self, descriptor: CallDescriptor, error: Exception) -> Any:
        ctx = self.context
        cache_key = descriptor.cache_key
        if descriptor.serve_stale_on_failure and cache_key is not None and ctx.persistent is not None:
            entry = ctx.persistent.read(cache_key)
            if entry is not None:
                logger.warning(
                    "%s failed (%s); serving %scached value for %s",
                    descriptor.operation_name,
                    ctx.classifier.describe(error),
                    "stale " if entry.is_stale else "",
                    cache_key,
                )
                return entry.value
        raise error

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_stats_summary(self) -> StatsSummary:
        return self.context.stats.summary()

    def get_rate_limit_status(self) -> Dict[str, Any]:
        return self.context.admission.get_rate_limit_status()

    def should_throttle(self) -> bool:
        return self.context.admission.should_throttle()

    def refresh_multiplier(self) -> int:
        return self.context.admission.refresh_multiplier()

    def optimal_batch_size(self, requested: int) -> int:
        return self.context.admission.optimal_batch_size(requested)

    def read_persisted(self, keys: List[str]) -> List[PersistentEntry]:
        """Persisted entries for `keys` in request order; empty without a store."""
        if self.context.persistent is None:
            return []
        return self.context.persistent.read_many(keys)

    def clear_cache(self) -> None:
        self.context.cache.clear()
