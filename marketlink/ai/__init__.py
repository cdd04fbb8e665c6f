"""
AI completion access with retries and cross-provider fallback.
"""

from marketlink.ai.client import AIClient
from marketlink.ai.fallback import FallbackChain, build_provider_order
from marketlink.ai.providers import (
    AIProvider,
    AnthropicProvider,
    CompletionRequest,
    CompletionResponse,
    OllamaProvider,
    OpenAICompatibleProvider,
    default_providers,
    error_from_response,
)

__all__ = [
    "AIClient",
    "FallbackChain",
    "build_provider_order",
    "AIProvider",
    "AnthropicProvider",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "CompletionRequest",
    "CompletionResponse",
    "default_providers",
    "error_from_response",
]
