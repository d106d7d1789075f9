"""Gateway configuration using pydantic-settings.

This module defines the GatewaySettings class that reads configuration
from environment variables with the GATEWAY_ prefix. The webhook secret and
app id must be set for the gateway to start; the private key comes either
inline (GATEWAY_PRIVATE_KEY) or from a PEM file (GATEWAY_PRIVATE_KEY_PATH).
"""

from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import KeyMaterialError

# Platform limit on the lifetime of an app assertion
MAX_ASSERTION_TTL_SECONDS = 600


class GatewaySettings(BaseSettings):
    """Webhook gateway configuration from environment variables.

    All environment variables are prefixed with GATEWAY_ (e.g., GATEWAY_APP_ID).

    Required fields (must be set via environment variables):
    - webhook_secret: Shared secret for verifying webhook signatures
    - app_id: GitHub App identifier used as the assertion issuer
    """

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Webhook Configuration
    # -------------------------------------------------------------------------
    # Shared secret for HMAC signature verification
    webhook_secret: str

    # Path the webhook endpoint listens on; anything else is "not found"
    webhook_path: str = "/"

    # Acknowledge first and run handlers after the response is sent
    dispatch_in_background: bool = True

    # -------------------------------------------------------------------------
    # GitHub App Configuration
    # -------------------------------------------------------------------------
    app_id: int

    # Inline PEM private key; takes precedence over private_key_path
    private_key: Optional[str] = None

    private_key_path: str = "private-key.pem"

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # -------------------------------------------------------------------------
    # Token Lifecycle
    # -------------------------------------------------------------------------
    # Tokens this close to expiry are refreshed before being handed out
    token_safety_margin_seconds: int = 60

    # Upper bound on a single token-endpoint exchange
    token_exchange_timeout_seconds: float = 10.0

    assertion_ttl_seconds: int = MAX_ASSERTION_TTL_SECONDS

    # -------------------------------------------------------------------------
    # Default Handler
    # -------------------------------------------------------------------------
    welcome_comment: str = "Welcome to the robot uprising."

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 7777

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that webhook secret is not empty."""
        if not v or not v.strip():
            raise ValueError("webhook_secret cannot be empty")
        return v

    @field_validator("app_id")
    @classmethod
    def validate_app_id(cls, v: int) -> int:
        """Validate that the app id is positive."""
        if v < 1:
            raise ValueError("app_id must be a positive integer")
        return v

    @field_validator("webhook_path")
    @classmethod
    def validate_webhook_path(cls, v: str) -> str:
        """Validate that the webhook path is absolute."""
        if not v.startswith("/"):
            raise ValueError("webhook_path must start with /")
        return v

    @field_validator("github_base_url")
    @classmethod
    def validate_github_base_url(cls, v: str) -> str:
        """Validate that the GitHub base URL is a valid URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("github_base_url must start with http:// or https://")
        return v

    @field_validator("token_safety_margin_seconds")
    @classmethod
    def validate_safety_margin(cls, v: int) -> int:
        if v < 0:
            raise ValueError("token_safety_margin_seconds cannot be negative")
        return v

    @field_validator("token_exchange_timeout_seconds")
    @classmethod
    def validate_exchange_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("token_exchange_timeout_seconds must be positive")
        return v

    @field_validator("assertion_ttl_seconds")
    @classmethod
    def validate_assertion_ttl(cls, v: int) -> int:
        """Validate that the assertion lifetime is within the platform limit."""
        if not 1 <= v <= MAX_ASSERTION_TTL_SECONDS:
            raise ValueError(
                f"assertion_ttl_seconds must be between 1 and {MAX_ASSERTION_TTL_SECONDS}"
            )
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    def load_private_key(self) -> bytes:
        """Resolve the app private key material.

        The inline value wins; otherwise the key is read from
        ``private_key_path``.

        Returns:
            The PEM-encoded private key bytes.

        Raises:
            KeyMaterialError: If no key material can be found or read.
        """
        if self.private_key and self.private_key.strip():
            return self.private_key.encode("utf-8")

        path = Path(self.private_key_path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise KeyMaterialError(
                f"Cannot read private key from {path}: {e}"
            ) from e

        if not data.strip():
            raise KeyMaterialError(f"Private key file {path} is empty")
        return data


def get_settings() -> GatewaySettings:
    """Create and return GatewaySettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return GatewaySettings()
