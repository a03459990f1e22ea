"""LLM adapters for fine-format.

This module provides the provider clients, the credential pool and the
multi-key failover loop.
"""

from __future__ import annotations

from fine_format.adapters.llm.errors import classify_failure, is_retriable
from fine_format.adapters.llm.failover import FailoverFailure, FailoverSuccess, send_with_failover
from fine_format.adapters.llm.gemini import GeminiClient
from fine_format.adapters.llm.keys import Credential, KeyPool
from fine_format.adapters.llm.openrouter import OpenRouterClient
from fine_format.adapters.llm.types import (
    FailureKind,
    Message,
    Provider,
    ProviderFailure,
    ProviderRequest,
    ProviderSuccess,
    SamplingParams,
)

__all__ = [
    "Credential",
    "FailoverFailure",
    "FailoverSuccess",
    "FailureKind",
    "GeminiClient",
    "KeyPool",
    "Message",
    "OpenRouterClient",
    "Provider",
    "ProviderFailure",
    "ProviderRequest",
    "ProviderSuccess",
    "SamplingParams",
    "classify_failure",
    "is_retriable",
    "send_with_failover",
]
