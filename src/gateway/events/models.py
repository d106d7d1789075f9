"""Gateway event models for observability.

This module defines the data models for gateway events, including:
- EventType: Enum of all event types emitted by the gateway
- GatewayEvent: Structured event with all required metadata

Events are emitted for monitoring, alerting, and debugging purposes. They
are separate from webhook events: a GatewayEvent describes what the gateway
did with a delivery or a credential, not what happened on GitHub.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the gateway.

    Event Categories:
        DELIVERY_ACCEPTED: A delivery was verified and acknowledged.
        DELIVERY_REJECTED: A delivery failed verification and was refused.
        HANDLER_FAILED: A handler failed while processing a delivery.
        TOKEN_REFRESHED: An installation token was exchanged and cached.
        TOKEN_REFRESH_FAILED: An installation token exchange failed.
    """

    DELIVERY_ACCEPTED = "delivery_accepted"
    DELIVERY_REJECTED = "delivery_rejected"
    HANDLER_FAILED = "handler_failed"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"


class GatewayEvent(BaseModel):
    """Structured event emitted by the gateway.

    Attributes:
        event_type: The category of event.
        subject: What the event is about: a delivery id, or
            ``installation:<id>`` for token events.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For DELIVERY_* events:
            - webhook_event: The X-GitHub-Event value
            - reason: Rejection reason (DELIVERY_REJECTED only)
            - handlers: Number of handlers invoked (DELIVERY_ACCEPTED only)

        For HANDLER_FAILED events:
            - webhook_event, handler, error_message

        For TOKEN_* events:
            - installation_id
            - duration_seconds
            - error_message (TOKEN_REFRESH_FAILED only)
    """

    event_type: EventType

    subject: str = Field(
        ...,
        min_length=1,
        description="Delivery id or installation reference the event is about",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging.

        Example:
            >>> event = GatewayEvent(
            ...     event_type=EventType.DELIVERY_REJECTED,
            ...     subject="72d3162e-cc78-11e3-81ab-4c9367dc0958",
            ...     details={"reason": "bad signature"}
            ... )
            >>> event.to_log_dict()["event_type"]
            'delivery_rejected'
        """
        return {
            "event_type": self.event_type.value,
            "subject": self.subject,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
