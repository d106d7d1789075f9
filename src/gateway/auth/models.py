"""Credential models for authenticating as a GitHub App installation.

- AppIdentity: the app id and its private key, loaded once at startup
- SignedAssertion: a short-lived JWT asserting the app's own identity
- InstallationToken: a bearer token scoped to one installation
"""

from datetime import datetime, timedelta, timezone
from typing import Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AppIdentity(BaseModel):
    """The GitHub App's own identity.

    Process-wide and immutable. The private key is kept out of reprs so it
    never ends up in logs.

    Attributes:
        app_id: The GitHub App id, used as the assertion issuer.
        private_key: PEM-encoded RSA private key bytes.
    """

    model_config = ConfigDict(frozen=True)

    app_id: Union[int, str]
    private_key: bytes = Field(..., repr=False)


class SignedAssertion(BaseModel):
    """A signed, time-bounded JWT representing the app itself.

    Only used to request installation tokens. Never reused past its expiry.
    """

    model_config = ConfigDict(frozen=True)

    token: str = Field(..., repr=False)
    issued_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return as_utc(now) >= as_utc(self.expires_at)


class InstallationToken(BaseModel):
    """An access token scoped to one installation's permissions.

    Attributes:
        installation_id: The installation the token was issued for.
        token: The bearer token string.
        expires_at: When the platform will stop accepting the token.
    """

    model_config = ConfigDict(frozen=True)

    installation_id: int
    token: str = Field(..., repr=False)
    expires_at: datetime

    def remaining(self, now: datetime) -> timedelta:
        """Time left before the token expires."""
        return as_utc(self.expires_at) - as_utc(now)

    def is_fresh(self, now: datetime, safety_margin: timedelta) -> bool:
        """True if the token can still be handed out without a refresh."""
        return self.remaining(now) > safety_margin
