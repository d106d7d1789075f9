"""Welcome comment for newly opened issues.

When an ``issues`` event with action ``opened`` arrives, the handler
authenticates as the installation that delivered it and posts a greeting
on the issue.
"""

import logging

from ..errors import AuthError
from ..github.app_client import InstallationClientFactory
from ..github.client import GitHubAPIError
from ..webhook.models import HandlerResult, VerifiedEvent
from ..webhook.parser import parse_issue_event
from ..webhook.router import EventHandler

logger = logging.getLogger(__name__)

DEFAULT_WELCOME_COMMENT = "Welcome to the robot uprising."


class WelcomeCommentHandler(EventHandler):
    """Posts a comment on every newly opened issue.

    Attributes:
        comment: The comment body to post.
    """

    def __init__(
        self,
        client_factory: InstallationClientFactory,
        comment: str = DEFAULT_WELCOME_COMMENT,
    ):
        self._client_factory = client_factory
        self.comment = comment

    async def handle(self, event: VerifiedEvent) -> HandlerResult:
        issue = parse_issue_event(event)
        if issue is None:
            return HandlerResult.ok("ignored")

        if issue.installation_id is None:
            return HandlerResult.failed(
                f"No installation on issue event for {issue.issue_id}"
            )

        try:
            client = await self._client_factory.as_installation(issue.installation_id)
            async with client:
                await client.create_comment(
                    owner=issue.owner,
                    repo=issue.repository,
                    issue_number=issue.issue_number,
                    body=self.comment,
                )
        except AuthError as e:
            return HandlerResult.failed(
                f"Cannot authenticate as installation {issue.installation_id}: {e}"
            )
        except GitHubAPIError as e:
            return HandlerResult.failed(
                f"Failed to comment on {issue.issue_id}: {e.message}"
            )

        logger.info(
            "Welcomed new issue %s",
            issue.issue_id,
            extra={"delivery_id": event.delivery_id},
        )
        return HandlerResult.ok(f"commented on {issue.issue_id}")
