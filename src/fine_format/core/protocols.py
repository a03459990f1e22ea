"""Protocol definitions for fine-format.

This module defines the interfaces of the pipeline's collaborators.
Using protocols enables duck typing and loose coupling: tests and
alternative backends only need to implement these methods.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from fine_format.adapters.llm.types import Message, ProviderSuccess, SamplingParams
    from fine_format.adapters.registry import Task
    from fine_format.core.types import SourceDocument


@runtime_checkable
class ContentCleanerProtocol(Protocol):
    """Protocol for the content cleaning service.

    Turns raw sources (files or URLs) into plain text. May fail wholesale
    (raise) or per source (return fewer texts than sources).

    Example:
        >>> class UpperCleaner:
        ...     async def clean(self, sources):
        ...         return [s.content.upper() for s in sources]
        ...
        >>> assert isinstance(UpperCleaner(), ContentCleanerProtocol)
    """

    async def clean(self, sources: Sequence[SourceDocument]) -> list[str]:
        """Clean sources into plain texts.

        Args:
            sources: Raw sources.

        Returns:
            Zero or more cleaned texts.
        """
        ...


@runtime_checkable
class LLMSessionProtocol(Protocol):
    """Protocol for a per-run provider session.

    Implementations route the task to a provider, apply multi-key failover
    and raise when every credential failed.
    """

    async def complete(
        self,
        task: Task,
        messages: Sequence[Message],
        *,
        sampling: SamplingParams | None = None,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ProviderSuccess:
        """Run one provider call.

        Raises:
            ProviderNotConfiguredError: If the routed provider has no credentials.
            ProviderCallError: If every usable credential failed.
        """
        ...
