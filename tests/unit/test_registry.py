"""Unit tests for the service registry and LLM sessions."""

from __future__ import annotations

import pytest

from fine_format.adapters.llm.keys import Credential, KeyPool
from fine_format.adapters.llm.types import (
    FailureKind,
    InlineData,
    Message,
    Provider,
    ProviderFailure,
    ProviderRequest,
    ProviderResponse,
    ProviderSuccess,
    TokenUsage,
)
from fine_format.adapters.registry import ServiceRegistry, Task
from fine_format.core.config import Settings
from fine_format.core.exceptions import ProviderCallError, ProviderNotConfiguredError


class RecordingClient:
    """Client that records requests and replays scripted outcomes."""

    def __init__(self, *outcomes: ProviderResponse) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[ProviderRequest] = []

    async def send(self, request: ProviderRequest, credential: Credential) -> ProviderResponse:
        self.requests.append(request)
        return self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]


def success(text: str = "ok", tokens: int = 10) -> ProviderSuccess:
    return ProviderSuccess(text=text, usage=TokenUsage(input_tokens=tokens, output_tokens=tokens))


def make_registry(
    *,
    gemini: RecordingClient | None = None,
    openrouter: RecordingClient | None = None,
) -> ServiceRegistry:
    keys: dict[Provider, list[str]] = {}
    clients = {}
    if gemini is not None:
        keys[Provider.GEMINI] = ["g-1", "g-2"]
        clients[Provider.GEMINI] = gemini
    if openrouter is not None:
        keys[Provider.OPENROUTER] = ["o-1"]
        clients[Provider.OPENROUTER] = openrouter
    return ServiceRegistry(Settings(_env_file=None), KeyPool(keys), clients=clients)


# ============================================================================
# Routing
# ============================================================================


class TestRouting:
    """Tests for task routing."""

    def test_secondary_tasks_use_openrouter(self) -> None:
        """Gap filling tasks go to the secondary provider when configured."""
        registry = make_registry(gemini=RecordingClient(success()), openrouter=RecordingClient(success()))

        assert registry.route(Task.GAPS) is Provider.OPENROUTER
        assert registry.route(Task.VALIDATE) is Provider.OPENROUTER
        assert registry.route(Task.QA) is Provider.GEMINI
        assert registry.route(Task.CLEAN) is Provider.GEMINI

    def test_secondary_tasks_fall_back_to_gemini(self) -> None:
        """Without OpenRouter keys every task uses Gemini."""
        registry = make_registry(gemini=RecordingClient(success()))

        assert registry.route(Task.SYNTHETIC) is Provider.GEMINI

    def test_disabled_provider_client_raises(self) -> None:
        """Asking for a provider without keys is a configuration error."""
        registry = make_registry(gemini=RecordingClient(success()))

        with pytest.raises(ProviderNotConfiguredError):
            registry.client(Provider.OPENROUTER)

    def test_binary_requests_get_binary_timeout(self) -> None:
        """Requests embedding binaries use the binary deadline."""
        registry = make_registry(gemini=RecordingClient(success()))
        settings = registry.settings

        assert registry.timeout_for(Provider.GEMINI, has_binary=True) == settings.binary_timeout_seconds
        assert registry.timeout_for(Provider.GEMINI, has_binary=False) == settings.text_timeout_seconds
        assert registry.timeout_for(Provider.OPENROUTER, has_binary=False) == settings.openrouter_timeout_seconds

    def test_from_settings_enables_configured_providers(self) -> None:
        """Only providers with keys get a client."""
        registry = ServiceRegistry.from_settings(Settings(_env_file=None, gemini_api_key="g-1"))

        assert registry.enabled_providers == [Provider.GEMINI]
        assert registry.is_enabled(Provider.OPENROUTER) is False


# ============================================================================
# Sessions
# ============================================================================


class TestLLMSession:
    """Tests for per-run sessions."""

    @pytest.mark.asyncio
    async def test_complete_builds_request(self) -> None:
        """The session fills model and timeout from the registry."""
        gemini = RecordingClient(success("themes"))
        session = make_registry(gemini=gemini).session()

        response = await session.complete(Task.THEMES, [Message(role="user", content="Hi")])

        assert response.text == "themes"
        request = gemini.requests[0]
        assert request.provider is Provider.GEMINI
        assert request.model == "gemini-2.0-flash-exp"
        assert request.timeout == 45.0

    @pytest.mark.asyncio
    async def test_binary_message_uses_binary_timeout(self) -> None:
        """A message with an attachment gets the binary deadline."""
        gemini = RecordingClient(success())
        session = make_registry(gemini=gemini).session()
        message = Message(content="Extract", attachments=(InlineData.from_bytes(b"%PDF", "application/pdf"),))

        await session.complete(Task.CLEAN, [message])

        assert gemini.requests[0].timeout == 25.0

    @pytest.mark.asyncio
    async def test_usage_accumulates(self) -> None:
        """Token usage of successful calls is summed."""
        session = make_registry(gemini=RecordingClient(success(tokens=10), success(tokens=5))).session()

        await session.complete(Task.THEMES, [Message(content="a")])
        await session.complete(Task.QA, [Message(content="b")])

        assert session.usage.input_tokens == 15
        assert session.usage.total_tokens == 30
        assert session.calls == 2

    @pytest.mark.asyncio
    async def test_failure_raises_provider_call_error(self) -> None:
        """Exhausted failover raises with the attempt count."""
        failing = RecordingClient(ProviderFailure(kind=FailureKind.RATE_LIMITED, message="quota", retriable=True))
        session = make_registry(gemini=failing).session()

        with pytest.raises(ProviderCallError) as exc_info:
            await session.complete(Task.QA, [Message(content="a")])

        assert exc_info.value.keys_attempted == 2
        assert exc_info.value.kind is FailureKind.RATE_LIMITED
        assert exc_info.value.provider == "gemini"
        assert len(session.excluded) == 2

    @pytest.mark.asyncio
    async def test_sessions_have_independent_exclusions(self) -> None:
        """A new session starts with every key usable again."""
        failing = RecordingClient(
            ProviderFailure(kind=FailureKind.RATE_LIMITED, message="quota", retriable=True),
            success(),
        )
        registry = make_registry(gemini=failing)
        first = registry.session()
        await first.complete(Task.QA, [Message(content="a")])

        assert len(first.excluded) == 1
        assert registry.session().excluded == set()
