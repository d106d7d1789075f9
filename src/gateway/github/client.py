"""GitHub API client for installation-scoped actions.

Handlers use this client once they hold an installation token, for example
to post a comment on an issue.

Requests are retried only when they never reached GitHub (connection
failures). A POST that GitHub may already have applied is never resent, so
a 5xx after a comment was stored cannot produce a duplicate comment.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "webhook-gateway/1.0"
API_VERSION = "2022-11-28"

# Failures raised before the request left this process
UNSENT_REQUEST_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


class GitHubAPIError(Exception):
    """Raised when a GitHub API request fails.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status code from the response, if one arrived.
        response_body: Response body from GitHub API.
        request_url: The URL that was requested.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub reports the rate limit as exhausted.

    Attributes:
        reset_at: Unix timestamp when the rate limit resets.
        retry_after: Seconds to wait before retrying.
    """

    def __init__(
        self,
        message: str,
        reset_at: Optional[int] = None,
        retry_after: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.reset_at = reset_at
        self.retry_after = retry_after


def _int_header(headers: httpx.Headers, name: str) -> Optional[int]:
    try:
        return int(headers[name])
    except (KeyError, ValueError):
        return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return (
        response.status_code == 403
        and _int_header(response.headers, "x-ratelimit-remaining") == 0
    )


class GitHubClient:
    """Async GitHub REST client bound to one bearer token.

    Attributes:
        token: Bearer token (installation token), or None for requests that
               supply their own Authorization header.
        base_url: Base URL for GitHub API, GitHub Enterprise Server included.
        max_retries: Extra attempts after a connection failure.
        base_delay: Base delay in seconds for exponential backoff.
        max_delay: Maximum delay in seconds between retries.
        timeout: Request timeout in seconds.

    Example:
        >>> async with GitHubClient(token="ghs_xxx") as client:
        ...     await client.create_comment("owner", "repo", 123, "Hello!")
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": USER_AGENT,
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _backoff(self, attempt: int) -> float:
        """Full-jitter exponential backoff for retry ``attempt`` (0-indexed)."""
        return random.uniform(0, min(self.base_delay * (2 ** attempt), self.max_delay))

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        reset_at = _int_header(response.headers, "x-ratelimit-reset")
        retry_after = _int_header(response.headers, "retry-after")
        if retry_after is None and reset_at is not None:
            retry_after = max(0, reset_at - int(time.time()))

        logger.warning(
            "GitHub API rate limit exceeded",
            extra={
                "reset_at": reset_at,
                "retry_after": retry_after,
                "path": response.request.url.path,
            },
        )
        return RateLimitError(
            message="GitHub API rate limit exceeded",
            status_code=response.status_code,
            reset_at=reset_at,
            retry_after=retry_after,
        )

    async def _send(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        """Send once, retrying only while the connection cannot be made."""
        attempt = 0
        while True:
            try:
                return await self.client.request(
                    method=method,
                    url=path,
                    json=json_data,
                    headers=headers,
                )
            except UNSENT_REQUEST_ERRORS as e:
                if attempt >= self.max_retries:
                    raise GitHubAPIError(
                        message=f"Could not reach GitHub after {attempt + 1} attempts: {e}",
                        request_url=f"{self.base_url}{path}",
                    ) from e
                delay = self._backoff(attempt)
                logger.warning(
                    "Connection to GitHub failed, retrying",
                    extra={
                        "error": str(e),
                        "attempt": attempt + 1,
                        "max_retries": self.max_retries,
                        "delay": delay,
                        "path": path,
                    },
                )
                attempt += 1
                await asyncio.sleep(delay)
            except httpx.HTTPError as e:
                # The request may have been applied; never resend it
                raise GitHubAPIError(
                    message=f"Request to GitHub failed: {e}",
                    request_url=f"{self.base_url}{path}",
                ) from e

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make an HTTP request and raise on error responses.

        Args:
            method: HTTP method.
            path: API path (e.g., /repos/owner/repo/issues/1/comments).
            json_data: Optional JSON body for the request.
            headers: Optional per-request headers, merged over the defaults.

        Returns:
            The successful HTTP response.

        Raises:
            RateLimitError: If the rate limit is exhausted.
            GitHubAPIError: For any other error response or transport failure.
        """
        response = await self._send(method, path, json_data, headers)

        if _is_rate_limited(response):
            raise self._rate_limit_error(response)

        if response.status_code >= 400:
            logger.error(
                "GitHub API error",
                extra={
                    "status_code": response.status_code,
                    "method": method,
                    "path": path,
                    "response_body": response.text[:500],
                },
            )
            raise GitHubAPIError(
                message=f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
                request_url=str(response.url),
            )

        return response

    async def create_comment(
        self,
        owner: str,
        repo: str,
        issue_number: int,
        body: str,
    ) -> Dict[str, Any]:
        """Create a comment on an issue.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            issue_number: Issue number to comment on.
            body: Comment body in markdown format.

        Returns:
            The created comment data from GitHub API.

        Raises:
            GitHubAPIError: If the request fails.
        """
        response = await self._request(
            method="POST",
            path=f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            json_data={"body": body},
        )

        result = response.json()
        logger.info(
            "Comment created",
            extra={
                "owner": owner,
                "repo": repo,
                "issue_number": issue_number,
                "comment_id": result.get("id"),
            },
        )
        return result
