"""OpenRouter adapter for fine-format.

This module provides an async client for the OpenRouter chat completions
API (OpenAI-compatible). It is the secondary provider, used for gap
filling: gap analysis, synthetic generation and validation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

from fine_format.adapters.llm.base import BaseProviderClient
from fine_format.adapters.llm.errors import make_failure
from fine_format.adapters.llm.types import FailureKind, Provider, ProviderFailure, ProviderSuccess, TokenUsage

if TYPE_CHECKING:
    from fine_format.adapters.llm.keys import Credential
    from fine_format.adapters.llm.types import ProviderRequest, ProviderResponse

# Default configuration
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "nvidia/llama-3.1-nemotron-ultra-253b-v1:free"
DEFAULT_REFERER = "https://fine-format.netlify.app"
DEFAULT_TITLE = "Fine Format - AI Dataset Generator"

TRUNCATED_FINISH_REASON = "length"


class OpenRouterClient(BaseProviderClient):
    """Async client for the OpenRouter API.

    Attributes:
        base_url: Base URL for OpenRouter API.
        referer: Value of the HTTP-Referer header.
        title: Value of the X-Title header.

    Example:
        >>> async with OpenRouterClient() as client:
        ...     response = await client.send(request, credential)
    """

    provider: ClassVar[Provider] = Provider.OPENROUTER

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        referer: str = DEFAULT_REFERER,
        title: str = DEFAULT_TITLE,
    ) -> None:
        super().__init__(base_url)
        self.referer = referer
        self.title = title

    def _build_call(
        self,
        request: ProviderRequest,
        credential: Credential,
    ) -> tuple[str, dict[str, str], dict[str, str], dict[str, Any]]:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {credential.secret}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.title,
        }
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": request.sampling.temperature,
            "max_tokens": request.sampling.max_tokens,
            "top_p": request.sampling.top_p,
            "frequency_penalty": 0.1,
            "presence_penalty": 0.1,
            "stream": False,
        }
        if request.tools:
            payload["tools"] = list(request.tools)
        return url, {}, headers, payload

    def _parse_success(self, data: dict[str, Any]) -> ProviderResponse:
        # OpenRouter reports upstream failures with a 200 and an error object
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                code = error.get("code")
                status = code if isinstance(code, int) else None
                return make_failure(status, f"OpenRouter API error: {error.get('message', error)}")
            return make_failure(None, f"OpenRouter API error: {error}")

        choices = data.get("choices") or []
        choice = choices[0] if choices else {}
        content = (choice.get("message") or {}).get("content")
        if not content:
            # An empty completion is retried on the next key
            return ProviderFailure(
                kind=FailureKind.UNKNOWN,
                message="Invalid response from OpenRouter API",
                retriable=True,
            )

        finish_reason = choice.get("finish_reason")
        usage = data.get("usage") or {}
        return ProviderSuccess(
            text=str(content),
            finish_reason=finish_reason,
            usage=TokenUsage(
                input_tokens=int(usage.get("prompt_tokens", 0) or 0),
                output_tokens=int(usage.get("completion_tokens", 0) or 0),
            ),
            truncated=finish_reason == TRUNCATED_FINISH_REASON,
        )
