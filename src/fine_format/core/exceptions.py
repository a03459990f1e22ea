"""Custom exceptions for fine-format.

This module defines the exception hierarchy used throughout the library.
All exceptions inherit from FineFormatError for easy catching.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fine_format.adapters.llm.types import FailureKind

# Number of characters of offending text kept on a ParseError
PARSE_ERROR_SAMPLE_LENGTH = 500


class FineFormatError(Exception):
    """Base exception for all fine-format errors.

    All custom exceptions in fine-format inherit from this class,
    making it easy to catch all library-specific errors.

    Example:
        >>> try:
        ...     # fine-format operations
        ...     pass
        ... except FineFormatError as e:
        ...     print(f"fine-format error: {e}")
    """


class ConfigurationError(FineFormatError):
    """Raised when configuration is invalid or missing.

    Example:
        >>> raise ConfigurationError("validation_confidence_threshold must be within [0, 1]")
    """


class ProviderNotConfiguredError(ConfigurationError):
    """Raised when a provider has no credentials at all.

    This is a fatal condition and is distinct from a per-key failure:
    retrying with another key cannot help when there are no keys.

    Example:
        >>> raise ProviderNotConfiguredError("gemini")
    """

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"No {provider} API keys configured")


class ProviderCallError(FineFormatError):
    """Raised when a provider call failed on every usable credential.

    Attributes:
        provider: Provider the call was sent to.
        kind: Failure kind of the last attempt.
        keys_attempted: Number of credentials tried during the failover loop.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        kind: FailureKind,
        keys_attempted: int,
    ) -> None:
        self.provider = provider
        self.kind = kind
        self.keys_attempted = keys_attempted
        super().__init__(message)


class ParseError(FineFormatError):
    """Raised when no record could be recovered from an LLM response.

    Attributes:
        sample: The first characters of the offending text, for diagnostics.

    Example:
        >>> raise ParseError("No records recovered", text="I'm sorry, I cannot help with that.")
    """

    def __init__(self, message: str, *, text: str = "") -> None:
        self.sample = text[:PARSE_ERROR_SAMPLE_LENGTH]
        super().__init__(message)


class PipelineError(FineFormatError):
    """Base class for dataset generation pipeline errors."""


class StageFatalError(PipelineError):
    """Raised when a stage fails in a way that aborts the whole run.

    Attributes:
        stage: Name of the stage that failed.
    """

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(message)


class PipelineBusyError(PipelineError):
    """Raised when a run is requested while another run is still in flight."""
