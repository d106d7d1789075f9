"""Error taxonomy for the webhook gateway.

- VerificationError: signature missing, malformed, or mismatched. Turned into
  a ``rejected`` directive at the gateway boundary.
- ParseError: payload is not JSON or lacks required fields for its event type.
  The event is dropped and the delivery is still acknowledged.
- AuthError: the installation token exchange failed. Propagated to whatever
  asked for the token.
- KeyMaterialError: the app private key cannot be loaded or used. Fatal at
  startup; surfaced as AuthError when hit during a refresh.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""


class VerificationError(GatewayError):
    """Raised when a webhook signature cannot be verified."""


class ParseError(GatewayError):
    """Raised when a verified payload cannot be turned into an event.

    Attributes:
        event_type: The event type claimed by the request, if known.
        delivery_id: The delivery id of the request, if known.
    """

    def __init__(
        self,
        message: str,
        event_type: Optional[str] = None,
        delivery_id: Optional[str] = None,
    ):
        self.event_type = event_type
        self.delivery_id = delivery_id
        super().__init__(message)


class AuthError(GatewayError):
    """Raised when an installation token cannot be obtained.

    Attributes:
        installation_id: The installation the token was requested for.
        status_code: HTTP status from the token endpoint, if one was received.
    """

    def __init__(
        self,
        message: str,
        installation_id: Optional[int] = None,
        status_code: Optional[int] = None,
    ):
        self.installation_id = installation_id
        self.status_code = status_code
        super().__init__(message)


class KeyMaterialError(GatewayError):
    """Raised when the app private key is missing, malformed, or unusable."""
