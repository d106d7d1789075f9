"""Webhook request and event models for the gateway.

This module defines the data that flows through the inbound side of the
gateway:

- WebhookRequest: the raw request as received, before any verification
- VerifiedEvent: a parsed payload, created only after the signature check
- IssueEvent: a typed view over an ``issues`` event for handlers
- HandlerResult / RouterResult: outcomes of dispatching an event

The models use Pydantic for validation, consistent with the gateway's
configuration approach in config.py.
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

SIGNATURE_256_HEADER = "x-hub-signature-256"
SIGNATURE_HEADER = "x-hub-signature"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"


class WebhookRequest(BaseModel):
    """An inbound HTTP request as seen by the gateway.

    Header names are normalized to lower case on construction so lookups
    are case-insensitive. Instances are immutable once received.

    Attributes:
        method: HTTP method (upper case).
        path: Request path, without query string.
        body: The raw request body bytes, exactly as signed.
        headers: Lower-cased header mapping.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "POST"
    path: str = "/"
    body: bytes = b""
    headers: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        body: bytes,
        headers: Mapping[str, str],
    ) -> "WebhookRequest":
        return cls(
            method=method.upper(),
            path=path,
            body=body,
            headers={k.lower(): v for k, v in headers.items()},
        )

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())

    @property
    def signature(self) -> Optional[str]:
        """The signature header, preferring the SHA-256 variant."""
        return self.header(SIGNATURE_256_HEADER) or self.header(SIGNATURE_HEADER)

    @property
    def event_type(self) -> Optional[str]:
        return self.header(EVENT_HEADER)

    @property
    def delivery_id(self) -> Optional[str]:
        return self.header(DELIVERY_HEADER)


class VerifiedEvent(BaseModel):
    """A webhook event whose signature has been verified.

    Never persisted. ``delivery_id`` is exposed so handlers that need
    deduplication can implement it; the router does not deduplicate.

    Attributes:
        event_type: Value of the event-type header (e.g. ``issues``).
        action: The payload's ``action`` field, if present.
        installation_id: The payload's ``installation.id``, if present.
        delivery_id: Value of the delivery-id header, if present.
        payload: The decoded JSON payload.
    """

    model_config = ConfigDict(frozen=True)

    event_type: str = Field(..., min_length=1)
    action: Optional[str] = None
    installation_id: Optional[int] = None
    delivery_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    def get(self, dotted_path: str, default: Any = None) -> Any:
        """Look up a nested payload value by dotted path.

        Example:
            >>> event.get("repository.owner.login")
            'octocat'
        """
        current: Any = self.payload
        for part in dotted_path.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current


class IssueAction(str, Enum):
    """GitHub issue event actions the gateway acts on."""

    OPENED = "opened"


class IssueEvent(BaseModel):
    """Typed view over a verified ``issues`` event.

    Attributes:
        action: The issue action.
        installation_id: Installation the event was delivered for.
        issue_number: The issue number within the repository.
        repository: The repository name (without owner prefix).
        owner: The repository owner (user or organization).
    """

    action: IssueAction
    installation_id: Optional[int] = None
    issue_number: int = Field(..., gt=0)
    repository: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)

    @property
    def issue_id(self) -> str:
        """Canonical issue identifier ``{owner}/{repository}#{issue_number}``."""
        return f"{self.owner}/{self.repository}#{self.issue_number}"


class HandlerResult(BaseModel):
    """Outcome reported by a single handler invocation."""

    success: bool = True
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> "HandlerResult":
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, message: str) -> "HandlerResult":
        return cls(success=False, message=message)


class HandlerFailure(BaseModel):
    """A handler that failed while processing an event."""

    handler: str
    message: str


class RouterResult(BaseModel):
    """Outcome of dispatching one event to all of its handlers.

    Attributes:
        event_type: The dispatched event type.
        invoked: Number of handlers that were invoked.
        failures: Handlers that returned a failed result or raised.
    """

    event_type: str
    invoked: int = 0
    failures: List[HandlerFailure] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.invoked - len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures
