"""Gemini adapter for fine-format.

This module provides an async client for the Gemini ``generateContent``
REST endpoint. It is the primary provider: content cleaning, theme
identification, web augmentation and Q&A generation go through it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar

from fine_format.adapters.llm.base import BaseProviderClient
from fine_format.adapters.llm.errors import make_failure
from fine_format.adapters.llm.types import (
    FailureKind,
    GroundingMetadata,
    Provider,
    ProviderFailure,
    ProviderSuccess,
    TokenUsage,
    WebSource,
)

if TYPE_CHECKING:
    from fine_format.adapters.llm.keys import Credential
    from fine_format.adapters.llm.types import Message, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash-exp"
DEFAULT_MAX_OUTPUT_TOKENS_CAP = 20000

# Tool declaration enabling Google Search grounding
GOOGLE_SEARCH_TOOL: dict[str, Any] = {"googleSearch": {}}

TRUNCATED_FINISH_REASON = "MAX_TOKENS"
_BLOCKED_FINISH_REASONS = frozenset({"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"})


class GeminiClient(BaseProviderClient):
    """Async client for the Gemini API.

    Attributes:
        base_url: Base URL for the Gemini REST API.
        max_output_tokens_cap: Upper bound applied to ``max_tokens``.

    Example:
        >>> async with GeminiClient() as client:
        ...     response = await client.send(request, credential)
        ...     if response.ok:
        ...         print(response.text)
    """

    provider: ClassVar[Provider] = Provider.GEMINI

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        max_output_tokens_cap: int = DEFAULT_MAX_OUTPUT_TOKENS_CAP,
        max_binary_bytes: int | None = 10 * 1024 * 1024,
    ) -> None:
        super().__init__(base_url, max_binary_bytes=max_binary_bytes)
        self.max_output_tokens_cap = max_output_tokens_cap

    def _build_call(
        self,
        request: ProviderRequest,
        credential: Credential,
    ) -> tuple[str, dict[str, str], dict[str, str], dict[str, Any]]:
        url = f"{self.base_url}/models/{request.model}:generateContent"
        params = {"key": credential.secret}
        headers = {"Content-Type": "application/json"}

        system_parts = [{"text": m.content} for m in request.messages if m.role == "system" and m.content]
        contents = [_to_content(m) for m in request.messages if m.role != "system"]

        generation_config: dict[str, Any] = {
            "maxOutputTokens": min(request.sampling.max_tokens, self.max_output_tokens_cap),
            "temperature": request.sampling.temperature,
            "topP": request.sampling.top_p,
        }
        if request.sampling.top_k is not None:
            generation_config["topK"] = request.sampling.top_k

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        if request.tools:
            payload["tools"] = list(request.tools)

        logger.debug(
            f"Gemini request: model={request.model}, messages={len(contents)}, "
            f"max_output_tokens={generation_config['maxOutputTokens']}, "
            f"tools={bool(request.tools)}, binary={request.has_binary}"
        )
        return url, params, headers, payload

    def _parse_success(self, data: dict[str, Any]) -> ProviderResponse:
        if "error" in data:
            error = data["error"] or {}
            return make_failure(error.get("code"), f"Gemini API error: {error.get('message', error)}")

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            return ProviderFailure(
                kind=FailureKind.SAFETY_BLOCKED,
                message=f"Prompt was blocked by SAFETY filters ({block_reason})",
                retriable=False,
            )

        candidates = data.get("candidates") or []
        candidate = candidates[0] if candidates else {}
        finish_reason = candidate.get("finishReason")

        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))

        if finish_reason in _BLOCKED_FINISH_REASONS and not text:
            return ProviderFailure(
                kind=FailureKind.SAFETY_BLOCKED,
                message=f"Content was blocked by SAFETY filters ({finish_reason})",
                retriable=False,
            )

        if not text:
            return make_failure(None, "No response from Gemini API")

        truncated = finish_reason == TRUNCATED_FINISH_REASON
        if truncated:
            logger.warning("Gemini response was truncated due to token limit")

        return ProviderSuccess(
            text=text,
            finish_reason=finish_reason,
            usage=_parse_usage(data.get("usageMetadata") or {}),
            grounding_metadata=_parse_grounding(candidate.get("groundingMetadata")),
            truncated=truncated,
        )


def _to_content(message: Message) -> dict[str, Any]:
    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"text": message.content})
    for item in message.attachments:
        parts.append({"inlineData": {"mimeType": item.mime_type, "data": item.data}})
    return {
        "role": "model" if message.role == "assistant" else "user",
        "parts": parts,
    }


def _parse_usage(usage: dict[str, Any]) -> TokenUsage:
    return TokenUsage(
        input_tokens=int(usage.get("promptTokenCount", 0) or 0),
        output_tokens=int(usage.get("candidatesTokenCount", 0) or 0),
    )


def _parse_grounding(raw: dict[str, Any] | None) -> GroundingMetadata | None:
    if not raw:
        return None
    sources = [
        WebSource(uri=web["uri"], title=web.get("title", ""))
        for chunk in raw.get("groundingChunks") or []
        if (web := chunk.get("web")) and web.get("uri")
    ]
    queries = [str(q) for q in raw.get("webSearchQueries") or []]
    return GroundingMetadata(sources=sources, web_search_queries=queries)
