"""Adapters module for fine-format.

This module provides adapters for external services:
- LLM providers (Gemini, OpenRouter) with multi-key failover
- The service registry routing generation tasks to providers
- Content cleaners turning raw sources into plain text
"""

from __future__ import annotations

from fine_format.adapters.cleaning import LLMContentCleaner, PlainTextCleaner
from fine_format.adapters.llm import GeminiClient, KeyPool, OpenRouterClient
from fine_format.adapters.registry import LLMSession, ServiceRegistry, Task

__all__ = [
    "GeminiClient",
    "KeyPool",
    "LLMContentCleaner",
    "LLMSession",
    "OpenRouterClient",
    "PlainTextCleaner",
    "ServiceRegistry",
    "Task",
]
