"""
AI completion providers.

Each provider speaks its vendor's chat HTTP API through `requests` and maps
failures onto the shared error taxonomy, so the RetryEngine and FallbackChain
treat a Groq 429 and an Anthropic 429 the same way.

Usage:
    provider = OpenAICompatibleProvider.groq()
    if provider.is_available():
        response = await provider.complete(CompletionRequest(messages=[...]))
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from marketlink.constants import (
    AI_REQUEST_TIMEOUT_SECONDS,
    ANTHROPIC_API_VERSION,
    ANTHROPIC_BASE_URL,
    DEFAULT_MODELS,
    DEFAULT_OLLAMA_URL,
    GROQ_BASE_URL,
    OPENAI_BASE_URL,
)
from marketlink.core.errors import (
    AuthError,
    RateLimitError,
    ServerError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from marketlink.env_loader import get_api_key, get_provider_key
from marketlink.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CompletionRequest:
    """One logical chat completion request."""

    messages: List[Dict[str, str]]
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None


@dataclass
class CompletionResponse:
    content: Optional[str]
    model: str
    provider: str
    usage: Dict[str, int] = field(default_factory=dict)


def _error_details(response: Any) -> tuple:
    """(message, code) from a JSON error body, falling back to the raw text."""
    try:
        body = response.json()
    except ValueError:
        return (response.text or "").strip()[:200], None
    error = body.get("error", body) if isinstance(body, dict) else body
    if isinstance(error, dict):
        return str(error.get("message") or error), error.get("code") or error.get("type")
    return str(error), None


def error_from_response(provider: str, response: Any) -> UpstreamError:
    """Translate an HTTP error response into the error taxonomy."""
    status = response.status_code
    message, code = _error_details(response)
    text = f"{provider} API error {status}: {message}"

    if status == 429:
        retry_after = response.headers.get("retry-after")
        try:
            retry_after = float(retry_after) if retry_after is not None else None
        except ValueError:
            retry_after = None
        return RateLimitError(text, code=code, status=status, retry_after=retry_after)
    if status in (401, 403):
        return AuthError(text, code=code, status=status)
    if status >= 500:
        return ServerError(text, code=code, status=status)
    return ValidationError(text, code=code, status=status)


class AIProvider:
    """
    Base class for chat completion providers.

    Subclasses implement `_build_request` and `_parse_response`; transport,
    error mapping and threading live here.
    """

    name = "base"
    requires_key = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "",
        default_model: Optional[str] = None,
        timeout: float = AI_REQUEST_TIMEOUT_SECONDS,
        session: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model or DEFAULT_MODELS.get(self.name, "")
        self.timeout = timeout
        self.session = session or requests.Session()

    def is_available(self) -> bool:
        """Whether the provider has the credentials it needs."""
        return bool(self.api_key) or not self.requires_key

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Run one completion request (a single HTTP call) off the event loop."""
        if not self.is_available():
            raise AuthError(f"{self.name} API key not configured", code="missing_api_key")
        return await asyncio.to_thread(self._complete_sync, request)

    def _complete_sync(self, request: CompletionRequest) -> CompletionResponse:
        model = request.model or self.default_model
        url, headers, payload = self._build_request(request, model)
        logger.debug("%s completion (model=%s, messages=%d)", self.name, model, len(request.messages))
        body = self._post(url, headers, payload)
        return self._parse_response(body, model)

    def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise TransportError(f"{self.name} request timeout: {e}") from e
        except requests.ConnectionError as e:
            raise TransportError(f"{self.name} connection error: {e}") from e

        if response.status_code >= 400:
            raise error_from_response(self.name, response)

        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(f"{self.name} returned invalid JSON: {e}") from e

    def _build_request(self, request: CompletionRequest, model: str) -> tuple:
        raise NotImplementedError

    def _parse_response(self, body: Dict[str, Any], model: str) -> CompletionResponse:
        raise NotImplementedError


class OpenAICompatibleProvider(AIProvider):
    """Providers exposing the OpenAI /chat/completions API (OpenAI, Groq)."""

    def __init__(self, name: str, **kwargs: Any):
        self.name = name
        super().__init__(**kwargs)

    @classmethod
    def groq(cls, session: Optional[Any] = None) -> "OpenAICompatibleProvider":
        return cls("groq", api_key=get_provider_key("groq"), base_url=GROQ_BASE_URL, session=session)

    @classmethod
    def openai(cls, session: Optional[Any] = None) -> "OpenAICompatibleProvider":
        return cls("openai", api_key=get_provider_key("openai"), base_url=OPENAI_BASE_URL, session=session)

    def _build_request(self, request: CompletionRequest, model: str) -> tuple:
        payload: Dict[str, Any] = {"model": model, "messages": request.messages}
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        return f"{self.base_url}/chat/completions", headers, payload

    def _parse_response(self, body: Dict[str, Any], model: str) -> CompletionResponse:
        choices = body.get("choices") or [{}]
        message = choices[0].get("message") or {}
        usage = body.get("usage") or {}
        return CompletionResponse(
            content=message.get("content"),
            model=body.get("model", model),
            provider=self.name,
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
        )


class AnthropicProvider(AIProvider):
    """Anthropic Messages API."""

    name = "anthropic"

    @classmethod
    def from_env(cls, session: Optional[Any] = None) -> "AnthropicProvider":
        return cls(api_key=get_provider_key("anthropic"), base_url=ANTHROPIC_BASE_URL, session=session)

    def _build_request(self, request: CompletionRequest, model: str) -> tuple:
        system = "\n\n".join(m["content"] for m in request.messages if m.get("role") == "system")
        messages = [m for m in request.messages if m.get("role") != "system"]
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": request.max_tokens or 1024,
        }
        if system:
            payload["system"] = system
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }
        return f"{self.base_url}/messages", headers, payload

    def _parse_response(self, body: Dict[str, Any], model: str) -> CompletionResponse:
        text = "".join(block.get("text", "") for block in body.get("content", []) if block.get("type") == "text")
        usage = body.get("usage") or {}
        prompt = usage.get("input_tokens", 0)
        completion = usage.get("output_tokens", 0)
        return CompletionResponse(
            content=text or None,
            model=body.get("model", model),
            provider=self.name,
            usage={"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": prompt + completion},
        )


class OllamaProvider(AIProvider):
    """Local Ollama server; needs no key, only a reachable URL."""

    name = "ollama"
    requires_key = False

    @classmethod
    def from_env(cls, session: Optional[Any] = None) -> "OllamaProvider":
        return cls(base_url=get_api_key("OLLAMA_URL") or DEFAULT_OLLAMA_URL, session=session)

    def is_available(self) -> bool:
        return bool(self.base_url)

    def _build_request(self, request: CompletionRequest, model: str) -> tuple:
        options: Dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        payload = {"model": model, "messages": request.messages, "stream": False, "options": options}
        return f"{self.base_url}/api/chat", {"Content-Type": "application/json"}, payload

    def _parse_response(self, body: Dict[str, Any], model: str) -> CompletionResponse:
        prompt = body.get("prompt_eval_count", 0)
        completion = body.get("eval_count", 0)
        return CompletionResponse(
            content=(body.get("message") or {}).get("content"),
            model=body.get("model", model),
            provider=self.name,
            usage={"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": prompt + completion},
        )


def default_providers(session: Optional[Any] = None) -> Dict[str, AIProvider]:
    """All known providers, configured from the environment."""
    return {
        "groq": OpenAICompatibleProvider.groq(session=session),
        "openai": OpenAICompatibleProvider.openai(session=session),
        "anthropic": AnthropicProvider.from_env(session=session),
        "ollama": OllamaProvider.from_env(session=session),
    }
