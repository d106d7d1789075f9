"""Inbound webhook handling for the gateway.

This package verifies, parses and routes GitHub webhook deliveries:
- signature: HMAC verification of the raw request body
- parser: decoding verified payloads into VerifiedEvent objects
- router: dispatching events to registered handlers
"""

from .models import (
    HandlerFailure,
    HandlerResult,
    IssueAction,
    IssueEvent,
    RouterResult,
    VerifiedEvent,
    WebhookRequest,
)
from .parser import parse_issue_event, parse_verified_event
from .router import WILDCARD, CallbackHandler, EventHandler, EventRouter
from .signature import SignatureVerifier, sign, verify

__all__ = [
    "CallbackHandler",
    "EventHandler",
    "EventRouter",
    "HandlerFailure",
    "HandlerResult",
    "IssueAction",
    "IssueEvent",
    "RouterResult",
    "SignatureVerifier",
    "VerifiedEvent",
    "WILDCARD",
    "WebhookRequest",
    "parse_issue_event",
    "parse_verified_event",
    "sign",
    "verify",
]
