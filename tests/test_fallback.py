"""Tests for AI providers, the fallback chain and the AI client."""

import pytest
import requests

from marketlink.ai.client import AIClient
from marketlink.ai.fallback import FallbackChain, build_provider_order
from marketlink.ai.providers import (
    AnthropicProvider,
    CompletionRequest,
    CompletionResponse,
    OllamaProvider,
    OpenAICompatibleProvider,
    error_from_response,
)
from marketlink.core.errors import (
    AuthError,
    ChainExhaustedError,
    RateLimitError,
    ServerError,
    TransportError,
    ValidationError,
)
from marketlink.core.retry import RetryConfig, RetryEngine


class FakeProvider:
    """Provider double that fails `failures` times before answering."""

    def __init__(self, name, failures=0, error=None, available=True):
        self.name = name
        self.failures = failures
        self.error = error or RateLimitError("429 too many requests")
        self.available = available
        self.calls = 0
        self.requests = []

    def is_available(self):
        return self.available

    async def complete(self, request):
        self.calls += 1
        self.requests.append(request)
        if self.calls <= self.failures:
            raise self.error
        return CompletionResponse(content=f"answer from {self.name}", model="m", provider=self.name)


class FakeResponse:

    def __init__(self, status_code=200, body=None, text="", headers=None):
        self.status_code = status_code
        self._body = body
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Records posts and replays a canned response (or raises)."""

    def __init__(self, response=None, raises=None):
        self.response = response
        self.raises = raises
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.raises is not None:
            raise self.raises
        return self.response


@pytest.fixture
def engine(clock):
    return RetryEngine(clock=clock)


REQUEST = CompletionRequest(messages=[{"role": "user", "content": "hi"}])


class TestFallbackChain:
    """Test suite for FallbackChain."""

    @pytest.mark.asyncio
    async def test_escalates_after_retries_exhausted(self, engine):
        a = FakeProvider("a", failures=99)
        b = FakeProvider("b")
        chain = FallbackChain([a, b], retry_engine=engine, retry_config=RetryConfig(max_attempts=3))

        response = await chain.run(lambda p: p.complete(REQUEST))

        assert response.provider == "b"
        assert a.calls == 3
        assert b.calls == 1
        assert [f.provider for f in chain.last_failures] == ["a"]
        assert chain.last_failures[0].attempts == 3
        assert isinstance(chain.last_failures[0].cause, RateLimitError)

    @pytest.mark.asyncio
    async def test_terminal_error_escalates_immediately(self, engine):
        a = FakeProvider("a", failures=99, error=AuthError("401 unauthorized"))
        b = FakeProvider("b")
        chain = FallbackChain([a, b], retry_engine=engine, retry_config=RetryConfig(max_attempts=3))
        response = await chain.run(lambda p: p.complete(REQUEST))
        assert response.provider == "b"
        assert a.calls == 1

    @pytest.mark.asyncio
    async def test_skips_unavailable_providers(self, engine):
        a = FakeProvider("a", available=False)
        b = FakeProvider("b")
        chain = FallbackChain([a, b], retry_engine=engine)
        response = await chain.run(lambda p: p.complete(REQUEST))
        assert response.provider == "b"
        assert a.calls == 0
        assert [p.name for p in chain.available()] == ["b"]

    @pytest.mark.asyncio
    async def test_all_fail_reports_each_provider_in_order(self, engine):
        a = FakeProvider("a", failures=99)
        b = FakeProvider("b", failures=99, error=ValidationError("400 bad request"))
        c = FakeProvider("c", available=False)
        chain = FallbackChain([a, b, c], retry_engine=engine, retry_config=RetryConfig(max_attempts=2))

        with pytest.raises(ChainExhaustedError) as exc_info:
            await chain.run(lambda p: p.complete(REQUEST))

        error = exc_info.value
        assert error.providers == ["a", "b"]
        assert [f.attempts for f in error.failures] == [2, 1]
        assert isinstance(error.failures[0].cause, RateLimitError)
        assert isinstance(error.failures[1].cause, ValidationError)
        assert error.skipped == ["c"]

    @pytest.mark.asyncio
    async def test_nothing_available(self, engine):
        chain = FallbackChain([FakeProvider("a", available=False)], retry_engine=engine)
        with pytest.raises(ChainExhaustedError, match="No AI provider available"):
            await chain.run(lambda p: p.complete(REQUEST))


def test_build_provider_order():
    assert build_provider_order("openai", ("groq", "openai", "anthropic")) == ["openai", "groq", "anthropic"]
    assert build_provider_order("ollama", ()) == ["ollama"]


class TestAIClient:
    """Test suite for AIClient."""

    def make_client(self, engine, **providers):
        return AIClient(providers=providers, retry_engine=engine, retry_config=RetryConfig(max_attempts=2))

    @pytest.mark.asyncio
    async def test_feature_defaults_applied(self, engine):
        groq = FakeProvider("groq")
        client = self.make_client(engine, groq=groq)
        await client.complete(REQUEST, feature="research")
        sent = groq.requests[0]
        assert sent.max_tokens == 2000
        assert sent.temperature == 0.3

    @pytest.mark.asyncio
    async def test_explicit_settings_win(self, engine):
        groq = FakeProvider("groq")
        client = self.make_client(engine, groq=groq)
        request = CompletionRequest(messages=REQUEST.messages, max_tokens=50, temperature=0.0)
        await client.complete(request, feature="research")
        assert groq.requests[0].max_tokens == 50
        assert groq.requests[0].temperature == 0.0

    @pytest.mark.asyncio
    async def test_falls_back_in_configured_order(self, engine):
        groq = FakeProvider("groq", failures=99)
        openai = FakeProvider("openai", available=False)
        anthropic = FakeProvider("anthropic")
        client = self.make_client(engine, groq=groq, openai=openai, anthropic=anthropic)
        response = await client.complete(REQUEST)
        assert response.provider == "anthropic"
        assert client.active_provider() == "groq"

    @pytest.mark.asyncio
    async def test_no_fallback(self, engine):
        groq = FakeProvider("groq", failures=99)
        anthropic = FakeProvider("anthropic")
        client = self.make_client(engine, groq=groq, anthropic=anthropic)
        with pytest.raises(ChainExhaustedError):
            await client.complete(REQUEST, no_fallback=True)
        assert anthropic.calls == 0

    def test_availability(self, engine):
        client = self.make_client(engine, groq=FakeProvider("groq", available=False))
        assert not client.is_available()
        assert client.active_provider() is None


class TestErrorMapping:
    """HTTP responses map onto the error taxonomy."""

    @pytest.mark.parametrize("status, expected", [
        (429, RateLimitError),
        (401, AuthError),
        (403, AuthError),
        (500, ServerError),
        (503, ServerError),
        (400, ValidationError),
        (404, ValidationError),
    ])
    def test_status_mapping(self, status, expected):
        response = FakeResponse(status, body={"error": {"message": "nope", "code": "x"}})
        error = error_from_response("groq", response)
        assert type(error) is expected
        assert error.status == status
        assert error.code == "x"
        assert "nope" in str(error)

    def test_retry_after_header(self):
        response = FakeResponse(429, text="slow down", headers={"retry-after": "12"})
        error = error_from_response("openai", response)
        assert error.retry_after == 12.0
        assert "slow down" in str(error)


class TestProviders:

    def test_openai_compatible_request(self):
        session = FakeSession(FakeResponse(200, body={
            "model": "llama",
            "choices": [{"message": {"content": "hello"}}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
        }))
        provider = OpenAICompatibleProvider("groq", api_key="k", base_url="https://api.groq.com/openai/v1/",
                                            session=session)
        response = provider._complete_sync(CompletionRequest(messages=REQUEST.messages, max_tokens=10))

        post = session.posts[0]
        assert post["url"] == "https://api.groq.com/openai/v1/chat/completions"
        assert post["headers"]["Authorization"] == "Bearer k"
        assert post["json"]["max_tokens"] == 10
        assert post["json"]["model"] == "llama-3.3-70b-versatile"
        assert response.content == "hello"
        assert response.usage["total_tokens"] == 4

    def test_anthropic_separates_system_prompt(self):
        session = FakeSession(FakeResponse(200, body={
            "content": [{"type": "text", "text": "hi there"}],
            "usage": {"input_tokens": 5, "output_tokens": 2},
        }))
        provider = AnthropicProvider(api_key="k", base_url="https://api.anthropic.com/v1", session=session)
        messages = [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}]
        response = provider._complete_sync(CompletionRequest(messages=messages))

        payload = session.posts[0]["json"]
        assert payload["system"] == "be brief"
        assert payload["messages"] == [{"role": "user", "content": "hi"}]
        assert session.posts[0]["headers"]["x-api-key"] == "k"
        assert response.content == "hi there"
        assert response.usage["total_tokens"] == 7

    def test_ollama_needs_no_key(self):
        provider = OllamaProvider(base_url="http://localhost:11434", session=FakeSession())
        assert provider.is_available()

    def test_http_error_raises_mapped_error(self):
        session = FakeSession(FakeResponse(429, body={"error": {"message": "rate limited"}}))
        provider = OpenAICompatibleProvider("openai", api_key="k", base_url="https://x", session=session)
        with pytest.raises(RateLimitError):
            provider._complete_sync(REQUEST)

    def test_connection_error_is_transport(self):
        session = FakeSession(raises=requests.ConnectionError("refused"))
        provider = OpenAICompatibleProvider("openai", api_key="k", base_url="https://x", session=session)
        with pytest.raises(TransportError):
            provider._complete_sync(REQUEST)

    @pytest.mark.asyncio
    async def test_missing_key_fails_terminally(self):
        provider = OpenAICompatibleProvider("openai", api_key=None, base_url="https://x", session=FakeSession())
        assert not provider.is_available()
        with pytest.raises(AuthError) as exc_info:
            await provider.complete(REQUEST)
        assert exc_info.value.code == "missing_api_key"
