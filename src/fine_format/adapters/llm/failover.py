"""Multi-key failover over a provider client.

Credentials are tried in priority order. A credential that fails with a
retriable error (or an auth error) is excluded for the rest of the run and
the next one is tried; the first success wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from fine_format.adapters.llm.errors import rotates_key
from fine_format.adapters.llm.types import FailureKind, ProviderFailure, ProviderSuccess

if TYPE_CHECKING:
    from fine_format.adapters.llm.keys import Credential, KeyPool
    from fine_format.adapters.llm.types import ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)


class ProviderClientProtocol(Protocol):
    """Anything that can send a request with one credential."""

    async def send(self, request: ProviderRequest, credential: Credential) -> ProviderResponse:
        """Send a request and return its outcome."""
        ...


@dataclass(frozen=True)
class FailoverSuccess:
    """A request that succeeded on one of the credentials.

    Attributes:
        response: The successful response.
        credential: Credential that succeeded.
        attempts: Number of credentials tried, including the successful one.
    """

    response: ProviderSuccess
    credential: Credential
    attempts: int

    ok = True

    @property
    def credential_index(self) -> int:
        """0-based index of the successful credential in priority order."""
        return self.credential.ordinal - 1


@dataclass(frozen=True)
class FailoverFailure:
    """A request that failed on every usable credential.

    Attributes:
        kind: Failure kind of the last attempt.
        message: Message of the last attempt.
        keys_attempted: Number of credentials tried.
    """

    kind: FailureKind
    message: str
    keys_attempted: int

    ok = False


FailoverResult = FailoverSuccess | FailoverFailure


async def send_with_failover(
    client: ProviderClientProtocol,
    pool: KeyPool,
    request: ProviderRequest,
    excluded: set[Credential],
) -> FailoverResult:
    """Send a request, rotating through credentials on failure.

    Args:
        client: Provider client for ``request.provider``.
        pool: Credential pool.
        request: The request to send.
        excluded: Credentials disqualified for the current run. Updated in
            place with every credential that fails with a key-rotating error.

    Returns:
        FailoverSuccess on the first success, FailoverFailure otherwise.

    Raises:
        ProviderNotConfiguredError: If the provider has no credentials at all.
    """
    attempts = 0
    last: ProviderFailure | None = None

    while True:
        credential = pool.next_credential(request.provider, excluding=excluded)
        if credential is None:
            break

        attempts += 1
        logger.debug(f"Trying {credential} ({attempts}/{pool.count(request.provider)})")
        response = await client.send(request, credential)

        if isinstance(response, ProviderSuccess):
            if attempts > 1:
                logger.info(f"Request succeeded with {credential} after {attempts} attempts")
            return FailoverSuccess(response=response, credential=credential, attempts=attempts)

        last = response
        if not rotates_key(response):
            logger.warning(f"{credential} failed with non-retriable {response.kind.value}: {response.message}")
            break

        excluded.add(credential)
        logger.warning(f"{credential} failed with {response.kind.value}, trying next key: {response.message}")

    if last is None:
        logger.error(f"All {request.provider.value} credentials are excluded for this run")
        return FailoverFailure(
            kind=FailureKind.UNKNOWN,
            message=f"All {request.provider.value} API keys have already failed in this run",
            keys_attempted=0,
        )

    logger.error(f"{request.provider.value} request failed after {attempts} key(s): {last.message}")
    return FailoverFailure(kind=last.kind, message=last.message, keys_attempted=attempts)
