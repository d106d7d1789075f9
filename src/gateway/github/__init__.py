"""GitHub API clients for the gateway.

- GitHubClient: installation-scoped REST calls (issue comments)
- GitHubAppClient: app-authenticated calls, including the token exchange
- InstallationClientFactory: clients authenticated as an installation
"""

from .app_client import AccessTokenResponse, GitHubAppClient, InstallationClientFactory
from .client import GitHubAPIError, GitHubClient, RateLimitError

__all__ = [
    "AccessTokenResponse",
    "GitHubAPIError",
    "GitHubAppClient",
    "GitHubClient",
    "InstallationClientFactory",
    "RateLimitError",
]
