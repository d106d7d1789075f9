"""GitHub App authentication against the REST API.

GitHubAppClient exchanges a signed app assertion for an installation access
token via ``POST /app/installations/{installation_id}/access_tokens``.
InstallationClientFactory hands out GitHubClient instances authenticated
as a given installation, backed by the shared token cache.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError

from ..auth.models import InstallationToken, SignedAssertion
from ..auth.token_cache import InstallationTokenCache, TokenExchanger
from ..errors import AuthError
from .client import GitHubAPIError, GitHubClient

logger = logging.getLogger(__name__)


class AccessTokenResponse(BaseModel):
    """Response from GitHub App installation token creation."""

    token: str
    expires_at: datetime
    permissions: Dict[str, str] = {}
    repository_selection: Optional[str] = None


class GitHubAppClient(GitHubClient, TokenExchanger):
    """Client authenticated as the GitHub App itself.

    Each request carries the assertion it was given as the bearer
    credential. Retries are disabled by default: the token cache bounds the
    exchange with its own timeout and callers decide on backoff.
    """

    def __init__(
        self,
        base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        max_retries: int = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            token=None,
            base_url=base_url,
            max_retries=max_retries,
            timeout=timeout,
            transport=transport,
        )

    async def exchange(
        self,
        assertion: SignedAssertion,
        installation_id: int,
    ) -> InstallationToken:
        """Exchange an app assertion for an installation token.

        Args:
            assertion: A current app assertion.
            installation_id: The installation to request a token for.

        Returns:
            The new installation token and its expiry.

        Raises:
            AuthError: If GitHub rejects the request, cannot be reached, or
                returns an unexpected response.
        """
        path = f"/app/installations/{installation_id}/access_tokens"

        try:
            response = await self._request(
                method="POST",
                path=path,
                headers={"Authorization": f"Bearer {assertion.token}"},
            )
        except GitHubAPIError as e:
            raise AuthError(
                f"Token exchange failed for installation {installation_id}: {e.message}",
                installation_id=installation_id,
                status_code=e.status_code,
            ) from e

        if response.status_code != 201:
            raise AuthError(
                f"Unexpected token endpoint status {response.status_code}",
                installation_id=installation_id,
                status_code=response.status_code,
            )

        try:
            data = AccessTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise AuthError(
                f"Malformed token endpoint response: {e}",
                installation_id=installation_id,
                status_code=response.status_code,
            ) from e

        logger.debug(
            "Generated installation token",
            extra={"installation_id": installation_id},
        )
        return InstallationToken(
            installation_id=installation_id,
            token=data.token,
            expires_at=data.expires_at,
        )


class InstallationClientFactory:
    """Builds GitHub clients authenticated as an installation.

    Example:
        >>> client = await factory.as_installation(42)
        >>> async with client:
        ...     await client.create_comment("o", "r", 7, "Hello!")
    """

    def __init__(
        self,
        token_cache: InstallationTokenCache,
        base_url: str = "https://api.github.com",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token_cache = token_cache
        self._base_url = base_url
        self._transport = transport

    async def as_installation(self, installation_id: int) -> GitHubClient:
        """Return a client carrying a fresh token for ``installation_id``.

        Raises:
            AuthError: If no token can be obtained.
        """
        token = await self._token_cache.get_token(installation_id)
        return GitHubClient(
            token=token.token,
            base_url=self._base_url,
            transport=self._transport,
        )
