"""Request/response types shared by the provider clients.

A provider call never raises for remote failures: the outcome is either a
ProviderSuccess or a ProviderFailure, and the failover loop decides what
to do with it.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Known LLM providers."""

    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class FailureKind(str, Enum):
    """Closed set of request-level failure kinds."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    BAD_REQUEST = "bad_request"
    SERVICE_UNAVAILABLE = "service_unavailable"
    SAFETY_BLOCKED = "safety_blocked"
    UNKNOWN = "unknown"


class InlineData(BaseModel):
    """Binary content embedded in a message (base64 encoded)."""

    model_config = {"frozen": True}

    mime_type: str = Field(..., description="MIME type of the content")
    data: str = Field(..., description="Base64-encoded payload")

    @property
    def decoded_size(self) -> int:
        """Approximate decoded size in bytes."""
        return (len(self.data) * 3) // 4

    @classmethod
    def from_bytes(cls, payload: bytes, mime_type: str) -> InlineData:
        """Build inline data from raw bytes."""
        return cls(mime_type=mime_type, data=base64.b64encode(payload).decode("ascii"))


class Message(BaseModel):
    """A single chat message."""

    model_config = {"frozen": True}

    role: Literal["system", "user", "assistant"] = Field(default="user")
    content: str = Field(default="")
    attachments: tuple[InlineData, ...] = Field(default=())


class SamplingParams(BaseModel):
    """Sampling parameters for a request."""

    model_config = {"frozen": True}

    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=4000, ge=1)
    top_p: float = Field(default=0.95, gt=0, le=1)
    top_k: int | None = Field(default=40, ge=1)


class ProviderRequest(BaseModel):
    """An immutable request to a provider.

    Attributes:
        provider: Target provider.
        model: Model id.
        messages: Message sequence.
        sampling: Sampling parameters.
        tools: Optional provider tool declarations (e.g. web search).
        timeout: Deadline for the whole call in seconds.
    """

    model_config = {"frozen": True}

    provider: Provider
    model: str
    messages: tuple[Message, ...]
    sampling: SamplingParams = Field(default_factory=SamplingParams)
    tools: tuple[dict[str, Any], ...] | None = None
    timeout: float = Field(default=45.0, gt=0)

    @property
    def has_binary(self) -> bool:
        """Whether any message carries embedded binary content."""
        return any(message.attachments for message in self.messages)

    @property
    def binary_size(self) -> int:
        """Total approximate decoded size of embedded binary content."""
        return sum(item.decoded_size for message in self.messages for item in message.attachments)


class TokenUsage(BaseModel):
    """Token usage reported by a provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens (input + output)."""
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class WebSource(BaseModel):
    """A web page cited by a grounded response."""

    uri: str
    title: str = ""


class GroundingMetadata(BaseModel):
    """Citation information returned when web search tooling was used."""

    sources: list[WebSource] = Field(default_factory=list)
    web_search_queries: list[str] = Field(default_factory=list)


class ProviderSuccess(BaseModel):
    """Successful provider response."""

    model_config = {"frozen": True}

    ok: Literal[True] = True
    text: str
    finish_reason: str | None = None
    usage: TokenUsage = Field(default_factory=TokenUsage)
    grounding_metadata: GroundingMetadata | None = None
    truncated: bool = False


class ProviderFailure(BaseModel):
    """Failed provider response.

    Attributes:
        kind: Classified failure kind.
        message: Diagnostic message.
        retriable: Whether the same request may succeed later or elsewhere.
        status_code: HTTP status code, when there was one.
    """

    model_config = {"frozen": True}

    ok: Literal[False] = False
    kind: FailureKind
    message: str
    retriable: bool
    status_code: int | None = None


ProviderResponse = Union[ProviderSuccess, ProviderFailure]
