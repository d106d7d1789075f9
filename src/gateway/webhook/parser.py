"""Payload parsing for verified webhook deliveries.

``parse_verified_event`` turns a request whose signature has already been
checked into a VerifiedEvent. ``parse_issue_event`` extracts a typed
IssueEvent for handlers that care about issues.

GitHub Webhook Payload Structure (issues event):
{
  "action": "opened",
  "installation": {"id": 42},
  "issue": {
    "number": 123,
    "title": "Issue title"
  },
  "repository": {
    "name": "repo-name",
    "owner": {"login": "owner-name"}
  }
}
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from ..errors import ParseError
from .models import IssueAction, IssueEvent, VerifiedEvent, WebhookRequest

logger = logging.getLogger(__name__)

# Fields an event must carry for its type to be usable by handlers.
# Event types not listed here only need to be a JSON object.
REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "issues": (
        "action",
        "issue.number",
        "repository.name",
        "repository.owner.login",
    ),
    "issue_comment": (
        "action",
        "issue.number",
        "comment.body",
        "repository.name",
        "repository.owner.login",
    ),
    "pull_request": (
        "action",
        "pull_request.number",
        "repository.name",
        "repository.owner.login",
    ),
}

_MISSING = object()


def _lookup(payload: Dict[str, Any], dotted_path: str) -> Any:
    current: Any = payload
    for part in dotted_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def parse_verified_event(request: WebhookRequest) -> VerifiedEvent:
    """Decode a verified request into a VerifiedEvent.

    Args:
        request: A request whose signature has already been verified.

    Returns:
        The parsed event.

    Raises:
        ParseError: If the body is not a JSON object, or a field required
            for the claimed event type is missing or has the wrong type.
    """
    event_type = request.event_type
    delivery_id = request.delivery_id

    if not event_type:
        raise ParseError("Missing event type header", delivery_id=delivery_id)

    try:
        payload = json.loads(request.body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(
            f"Payload is not valid JSON: {e}",
            event_type=event_type,
            delivery_id=delivery_id,
        ) from e

    if not isinstance(payload, dict):
        raise ParseError(
            f"Payload must be a JSON object, got {type(payload).__name__}",
            event_type=event_type,
            delivery_id=delivery_id,
        )

    for field in REQUIRED_FIELDS.get(event_type, ()):
        if _lookup(payload, field) in (_MISSING, None):
            raise ParseError(
                f"Missing required field '{field}' for {event_type} event",
                event_type=event_type,
                delivery_id=delivery_id,
            )

    action = payload.get("action")
    if action is not None and not isinstance(action, str):
        raise ParseError(
            f"Invalid 'action' field: {action!r}",
            event_type=event_type,
            delivery_id=delivery_id,
        )

    installation_id = None
    installation = payload.get("installation")
    if installation is not None:
        raw_id = installation.get("id") if isinstance(installation, dict) else None
        # bool is an int subclass; reject it explicitly
        if not isinstance(raw_id, int) or isinstance(raw_id, bool):
            raise ParseError(
                f"Invalid installation id: {raw_id!r}",
                event_type=event_type,
                delivery_id=delivery_id,
            )
        installation_id = raw_id

    return VerifiedEvent(
        event_type=event_type,
        action=action,
        installation_id=installation_id,
        delivery_id=delivery_id,
        payload=payload,
    )


def parse_issue_event(event: VerifiedEvent) -> Optional[IssueEvent]:
    """Extract an IssueEvent from a verified ``issues`` event.

    Only the fields needed to act on the issue are required; the title and
    body may be empty.

    Returns None for other event types, actions the gateway does not act
    on, or payloads missing issue or repository data.
    """
    if event.event_type != "issues":
        return None

    try:
        action = IssueAction(event.action)
    except ValueError:
        logger.debug("Ignoring issue action: %s", event.action)
        return None

    issue_number = event.get("issue.number")
    if not isinstance(issue_number, int) or isinstance(issue_number, bool) or issue_number <= 0:
        logger.warning("Invalid issue number: %s", issue_number)
        return None

    repo_name = event.get("repository.name")
    owner = event.get("repository.owner.login")
    for label, value in (("repository name", repo_name), ("owner login", owner)):
        if not isinstance(value, str) or not value.strip():
            logger.warning("Invalid or empty %s: %s", label, value)
            return None

    return IssueEvent(
        action=action,
        installation_id=event.installation_id,
        issue_number=issue_number,
        repository=repo_name.strip(),
        owner=owner.strip(),
    )
