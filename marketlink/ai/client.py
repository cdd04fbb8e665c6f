"""
AI client: provider selection, per-feature settings and fallback.

Usage:
    client = AIClient()
    response = await client.complete(
        CompletionRequest(messages=[{"role": "user", "content": "Summarize AAPL"}]),
        feature="summary",
    )
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Optional

from marketlink.ai.fallback import FallbackChain, build_provider_order
from marketlink.ai.providers import AIProvider, CompletionRequest, CompletionResponse, default_providers
from marketlink.config import Config, config as default_config
from marketlink.core.retry import RetryConfig, RetryEngine
from marketlink.logging_config import get_logger

logger = get_logger(__name__)


class AIClient:
    """Runs completions through a FallbackChain built from configuration."""

    def __init__(
        self,
        providers: Optional[Dict[str, AIProvider]] = None,
        cfg: Config = default_config,
        retry_engine: Optional[RetryEngine] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.cfg = cfg
        self.providers = providers if providers is not None else default_providers()
        self.retry_engine = retry_engine or RetryEngine()
        self.retry_config = retry_config or RetryConfig(
            max_attempts=cfg.retry_max_attempts,
            base_delay=cfg.retry_base_delay,
            max_delay=cfg.retry_max_delay,
        )

    def chain_for(self, primary: Optional[str] = None, no_fallback: bool = False) -> FallbackChain:
        primary = primary or self.cfg.ai_primary_provider
        names = [primary] if no_fallback else build_provider_order(primary, self.cfg.ai_fallback_order)
        providers = [self.providers[name] for name in names if name in self.providers]
        return FallbackChain(providers, retry_engine=self.retry_engine, retry_config=self.retry_config)

    def _with_feature_defaults(self, request: CompletionRequest, feature: str) -> CompletionRequest:
        max_tokens, temperature = self.cfg.feature_settings.get(
            feature, (self.cfg.ai_default_max_tokens, self.cfg.ai_default_temperature)
        )
        return replace(
            request,
            max_tokens=request.max_tokens if request.max_tokens is not None else max_tokens,
            temperature=request.temperature if request.temperature is not None else temperature,
        )

    async def complete(
        self,
        request: CompletionRequest,
        feature: str = "chat",
        primary: Optional[str] = None,
        no_fallback: bool = False,
    ) -> CompletionResponse:
        """
        Complete a request, escalating across providers on failure.

        Args:
            request: Messages plus optional overrides
            feature: Feature name selecting max_tokens/temperature defaults
            primary: Provider to try first (defaults to configured primary)
            no_fallback: Only try the primary provider

        Raises:
            ChainExhaustedError: every provider failed or none is configured
        """
        full_request = self._with_feature_defaults(request, feature)
        chain = self.chain_for(primary, no_fallback=no_fallback)
        logger.debug("AI %s request via %s", feature, [p.name for p in chain.providers])
        # Model names are provider-specific; let each provider pick its own unless pinned
        return await chain.run(lambda provider: provider.complete(full_request))

    def is_available(self) -> bool:
        return any(p.is_available() for p in self.providers.values())

    def active_provider(self) -> Optional[str]:
        """Name of the first available provider in fallback order."""
        for name in build_provider_order(self.cfg.ai_primary_provider, self.cfg.ai_fallback_order):
            provider = self.providers.get(name)
            if provider is not None and provider.is_available():
                return name
        return None
