"""Credential pool for LLM providers.

Holds an ordered set of API keys per provider and hands out the next
usable one. Exclusions are owned by the caller (one set per pipeline run),
so the pool itself is read-only after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from fine_format.adapters.llm.types import Provider
from fine_format.core.exceptions import ProviderNotConfiguredError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from fine_format.core.config import Settings


@dataclass(frozen=True)
class Credential:
    """An opaque provider API key.

    Attributes:
        provider: Provider the key belongs to.
        ordinal: 1-based position in the provider's priority order.
        secret: The key itself. Never included in repr or logs.
    """

    provider: Provider
    ordinal: int
    secret: str = field(repr=False)

    def __str__(self) -> str:
        return f"{self.provider.value}#{self.ordinal}"


class KeyPool:
    """Ordered credentials per provider.

    Example:
        >>> pool = KeyPool({Provider.GEMINI: ["key-a", "key-b"]})
        >>> first = pool.next_credential(Provider.GEMINI)
        >>> str(first)
        'gemini#1'
        >>> str(pool.next_credential(Provider.GEMINI, excluding={first}))
        'gemini#2'
    """

    def __init__(self, keys: Mapping[Provider, Iterable[str]]) -> None:
        self._credentials: dict[Provider, tuple[Credential, ...]] = {}
        for provider, secrets in keys.items():
            cleaned = [secret.strip() for secret in secrets if secret and secret.strip()]
            self._credentials[provider] = tuple(
                Credential(provider=provider, ordinal=index, secret=secret)
                for index, secret in enumerate(cleaned, start=1)
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> KeyPool:
        """Build the pool from application settings."""
        return cls(
            {
                Provider.GEMINI: settings.gemini_keys(),
                Provider.OPENROUTER: settings.openrouter_keys(),
            }
        )

    def is_configured(self, provider: Provider) -> bool:
        """Whether at least one credential exists for the provider."""
        return bool(self._credentials.get(provider))

    def count(self, provider: Provider) -> int:
        """Number of credentials configured for the provider."""
        return len(self._credentials.get(provider, ()))

    def credentials(self, provider: Provider) -> tuple[Credential, ...]:
        """All credentials for the provider, in priority order."""
        return self._credentials.get(provider, ())

    def next_credential(
        self,
        provider: Provider,
        excluding: set[Credential] | frozenset[Credential] | None = None,
    ) -> Credential | None:
        """Return the highest-priority credential not in ``excluding``.

        Args:
            provider: Provider to pick a credential for.
            excluding: Credentials already disqualified for the current run.

        Returns:
            The next usable credential, or None when all are excluded.

        Raises:
            ProviderNotConfiguredError: If the provider has no credentials at all.
        """
        credentials = self._credentials.get(provider)
        if not credentials:
            raise ProviderNotConfiguredError(provider.value)

        excluded = excluding or set()
        for credential in credentials:
            if credential not in excluded:
                return credential
        return None
