"""Failure classification for provider errors.

Providers do not always return structured error codes, so the kind of a
failure is derived from the HTTP status and the error text. All of that
heuristic lives here, behind a single function returning a closed enum.
"""

from __future__ import annotations

from fine_format.adapters.llm.types import FailureKind, ProviderFailure

_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline exceeded", "etimedout", "aborted")
_RATE_LIMIT_MARKERS = (
    "quota",
    "rate limit",
    "rate-limit",
    "ratelimit",
    "rate_limit",
    "too many requests",
    "resource_exhausted",
    "resource exhausted",
)
_AUTH_MARKERS = ("api key", "api_key", "unauthorized", "unauthenticated", "permission denied")

_TIMEOUT_STATUSES = frozenset({408, 504})
_UNAVAILABLE_STATUSES = frozenset({502, 503})

# Auth is excluded from this set: it is still rotated to the next key by the
# failover loop, because credentials are independent secrets.
_RETRIABLE_KINDS = frozenset(
    {
        FailureKind.TIMEOUT,
        FailureKind.RATE_LIMITED,
        FailureKind.SERVICE_UNAVAILABLE,
        FailureKind.UNKNOWN,
    }
)


def classify_failure(status_code: int | None, message: str) -> FailureKind:
    """Classify a provider failure into a FailureKind.

    Args:
        status_code: HTTP status code, or None for transport failures.
        message: Error text (response body or exception message).

    Returns:
        The failure kind.

    Example:
        >>> classify_failure(429, "")
        <FailureKind.RATE_LIMITED: 'rate_limited'>
        >>> classify_failure(None, "Request timeout")
        <FailureKind.TIMEOUT: 'timeout'>
    """
    lowered = message.lower()
    auth_text = any(marker in lowered for marker in _AUTH_MARKERS)

    # Explicit client-error statuses win over markers found in the body
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if status_code in (401, 403):
        return FailureKind.AUTH
    if status_code == 400:
        return FailureKind.AUTH if auth_text else FailureKind.BAD_REQUEST

    if status_code in _TIMEOUT_STATUSES or any(marker in lowered for marker in _TIMEOUT_MARKERS):
        return FailureKind.TIMEOUT
    if any(marker in lowered for marker in _RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED
    if auth_text:
        return FailureKind.AUTH
    if "SAFETY" in message:
        return FailureKind.SAFETY_BLOCKED
    if "invalid" in lowered:
        return FailureKind.BAD_REQUEST
    if status_code in _UNAVAILABLE_STATUSES or "unavailable" in lowered or "overloaded" in lowered:
        return FailureKind.SERVICE_UNAVAILABLE
    return FailureKind.UNKNOWN


def is_retriable(kind: FailureKind) -> bool:
    """Whether a failure of this kind may succeed when retried."""
    return kind in _RETRIABLE_KINDS


def rotates_key(failure: ProviderFailure) -> bool:
    """Whether the failover loop should move on to the next credential."""
    return failure.retriable or failure.kind is FailureKind.AUTH


def make_failure(status_code: int | None, message: str) -> ProviderFailure:
    """Build a classified ProviderFailure."""
    kind = classify_failure(status_code, message)
    return ProviderFailure(
        kind=kind,
        message=message,
        retriable=is_retriable(kind),
        status_code=status_code,
    )
