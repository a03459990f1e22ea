"""Service registry for fine-format.

The registry is built once at startup from Settings. It knows which
providers are configured (a provider without credentials is disabled),
owns one client per enabled provider, and routes each generation task to
a provider. Per-run state (excluded credentials, token usage) lives in an
LLMSession obtained from ``registry.session()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from typing_extensions import Self

from fine_format.adapters.llm.failover import FailoverSuccess, send_with_failover
from fine_format.adapters.llm.gemini import GeminiClient
from fine_format.adapters.llm.keys import KeyPool
from fine_format.adapters.llm.openrouter import OpenRouterClient
from fine_format.adapters.llm.types import Provider, ProviderRequest, SamplingParams, TokenUsage
from fine_format.core.config import Settings
from fine_format.core.exceptions import ProviderCallError, ProviderNotConfiguredError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from fine_format.adapters.llm.failover import ProviderClientProtocol
    from fine_format.adapters.llm.keys import Credential
    from fine_format.adapters.llm.types import Message, ProviderSuccess

logger = logging.getLogger(__name__)


class Task(str, Enum):
    """Generation tasks that issue provider calls."""

    CLEAN = "clean"
    THEMES = "themes"
    AUGMENT = "augment"
    QA = "qa"
    GAPS = "gaps"
    SYNTHETIC = "synthetic"
    VALIDATION_CONTEXT = "validation_context"
    VALIDATE = "validate"


# Tasks preferring the secondary provider; all others use the primary one
SECONDARY_TASKS = frozenset({Task.GAPS, Task.SYNTHETIC, Task.VALIDATION_CONTEXT, Task.VALIDATE})


class ServiceRegistry:
    """Configured providers, their clients and task routing.

    Attributes:
        settings: Application settings.
        pool: Credential pool.

    Example:
        >>> registry = ServiceRegistry.from_settings(Settings())
        >>> async with registry:
        ...     session = registry.session()
        ...     result = await session.complete(Task.THEMES, messages)
    """

    def __init__(
        self,
        settings: Settings,
        pool: KeyPool,
        clients: dict[Provider, ProviderClientProtocol] | None = None,
    ) -> None:
        self.settings = settings
        self.pool = pool
        self._clients: dict[Provider, ProviderClientProtocol] = (
            clients if clients is not None else self._default_clients()
        )
        enabled = ", ".join(p.value for p in self.enabled_providers) or "none"
        logger.debug(f"Service registry ready, enabled providers: {enabled}")

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ServiceRegistry:
        """Build a registry from settings (environment when omitted)."""
        settings = settings or Settings()
        return cls(settings, KeyPool.from_settings(settings))

    def _default_clients(self) -> dict[Provider, ProviderClientProtocol]:
        clients: dict[Provider, ProviderClientProtocol] = {}
        if self.pool.is_configured(Provider.GEMINI):
            clients[Provider.GEMINI] = GeminiClient(
                self.settings.gemini_base_url,
                max_output_tokens_cap=self.settings.max_output_tokens_cap,
                max_binary_bytes=self.settings.max_binary_bytes,
            )
        if self.pool.is_configured(Provider.OPENROUTER):
            clients[Provider.OPENROUTER] = OpenRouterClient(
                self.settings.openrouter_base_url,
                referer=self.settings.openrouter_referer,
                title=self.settings.openrouter_title,
            )
        return clients

    async def __aenter__(self) -> Self:
        """Open pooled connections for every enabled client."""
        for client in self._clients.values():
            if hasattr(client, "__aenter__"):
                await client.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close pooled connections."""
        for client in self._clients.values():
            if hasattr(client, "__aexit__"):
                await client.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def enabled_providers(self) -> list[Provider]:
        """Providers with at least one credential and a client."""
        return [p for p in Provider if p in self._clients and self.pool.is_configured(p)]

    def is_enabled(self, provider: Provider) -> bool:
        """Whether the provider can be used."""
        return provider in self.enabled_providers

    def client(self, provider: Provider) -> ProviderClientProtocol:
        """Return the client of an enabled provider.

        Raises:
            ProviderNotConfiguredError: If the provider is disabled.
        """
        if not self.is_enabled(provider):
            raise ProviderNotConfiguredError(provider.value)
        return self._clients[provider]

    def route(self, task: Task) -> Provider:
        """Pick the provider serving a task.

        Secondary-provider tasks fall back to the primary provider when the
        secondary one is not configured.
        """
        if task in SECONDARY_TASKS and self.is_enabled(Provider.OPENROUTER):
            return Provider.OPENROUTER
        return Provider.GEMINI

    def model_for(self, provider: Provider) -> str:
        """Model id used for a provider."""
        if provider is Provider.OPENROUTER:
            return self.settings.openrouter_model
        return self.settings.gemini_model

    def timeout_for(self, provider: Provider, *, has_binary: bool) -> float:
        """Deadline for a request, smaller when it embeds binary content."""
        if provider is Provider.OPENROUTER:
            return self.settings.openrouter_timeout_seconds
        if has_binary:
            return self.settings.binary_timeout_seconds
        return self.settings.text_timeout_seconds

    def session(self) -> LLMSession:
        """Start a new per-run session with a fresh exclusion set."""
        return LLMSession(registry=self)


@dataclass
class LLMSession:
    """Per-run view of the registry.

    Credentials that fail during the run stay excluded until the session
    ends. Token usage of successful calls is accumulated.

    Attributes:
        registry: The owning registry.
        excluded: Credentials disqualified for this run.
        usage: Aggregated token usage.
        calls: Number of successful calls.
    """

    registry: ServiceRegistry
    excluded: set[Credential] = field(default_factory=set)
    usage: TokenUsage = field(default_factory=TokenUsage)
    calls: int = 0

    async def complete(
        self,
        task: Task,
        messages: Sequence[Message],
        *,
        sampling: SamplingParams | None = None,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderSuccess:
        """Run one provider call for a task, with multi-key failover.

        Args:
            task: The generation task (decides the provider).
            messages: Message sequence.
            sampling: Sampling parameters.
            tools: Optional tool declarations.

        Returns:
            The successful response.

        Raises:
            ProviderNotConfiguredError: If the routed provider has no credentials.
            ProviderCallError: If every usable credential failed.
        """
        provider = self.registry.route(task)
        client = self.registry.client(provider)
        has_binary = any(message.attachments for message in messages)
        request = ProviderRequest(
            provider=provider,
            model=self.registry.model_for(provider),
            messages=tuple(messages),
            sampling=sampling or SamplingParams(),
            tools=tuple(tools) if tools else None,
            timeout=self.registry.timeout_for(provider, has_binary=has_binary),
        )

        logger.debug(f"Task '{task.value}' routed to {provider.value} ({request.model})")
        result = await send_with_failover(client, self.registry.pool, request, self.excluded)

        if isinstance(result, FailoverSuccess):
            self.usage = self.usage + result.response.usage
            self.calls += 1
            return result.response

        msg = f"{provider.value} request failed for task '{task.value}': {result.message}"
        raise ProviderCallError(
            msg,
            provider=provider.value,
            kind=result.kind,
            keys_attempted=result.keys_attempted,
        )

