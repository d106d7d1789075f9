"""Minting of GitHub App assertions (RS256 JWTs).

The assertion carries ``iss`` (app id), ``iat`` and ``exp`` claims. GitHub
rejects assertions that live longer than ten minutes, so the lifetime is
capped at that limit regardless of configuration.
"""

import functools
import logging
from datetime import datetime, timedelta

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..config import MAX_ASSERTION_TTL_SECONDS
from ..errors import KeyMaterialError
from .models import AppIdentity, SignedAssertion, as_utc, utcnow

logger = logging.getLogger(__name__)

ASSERTION_ALGORITHM = "RS256"


@functools.lru_cache(maxsize=8)
def load_signing_key(pem: bytes) -> rsa.RSAPrivateKey:
    """Parse PEM key material into an RSA private key.

    Raises:
        KeyMaterialError: If the material is not an unencrypted RSA PEM key.
    """
    if not pem or not pem.strip().startswith(b"-----BEGIN"):
        raise KeyMaterialError("Private key must be in PEM format starting with '-----BEGIN'")

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyMaterialError(f"Invalid private key: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError(
            f"Private key must be an RSA key, got {type(key).__name__}"
        )
    return key


class CredentialMinter:
    """Creates signed app assertions from an AppIdentity.

    Attributes:
        ttl: Assertion lifetime, capped at the platform maximum.
    """

    def __init__(self, ttl_seconds: int = MAX_ASSERTION_TTL_SECONDS):
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be positive")
        self.ttl = timedelta(seconds=min(ttl_seconds, MAX_ASSERTION_TTL_SECONDS))

    def check(self, identity: AppIdentity) -> None:
        """Validate key material eagerly so bad keys fail at startup.

        Raises:
            KeyMaterialError: If the key cannot be loaded or used to sign.
        """
        self.mint(identity, utcnow())
        logger.info("App private key validated for app %s", identity.app_id)

    def mint(self, identity: AppIdentity, now: datetime) -> SignedAssertion:
        """Create a fresh assertion valid from ``now``.

        Args:
            identity: The app identity to sign for.
            now: Issue time. Naive datetimes are treated as UTC.

        Returns:
            A SignedAssertion expiring at ``now + ttl``.

        Raises:
            KeyMaterialError: If the private key is malformed or unusable.
        """
        issued_at = as_utc(now).replace(microsecond=0)
        expires_at = issued_at + self.ttl

        key = load_signing_key(identity.private_key)
        payload = {
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "iss": str(identity.app_id),
        }
        try:
            token = jwt.encode(payload, key, algorithm=ASSERTION_ALGORITHM)
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise KeyMaterialError(f"Failed to sign app assertion: {e}") from e

        return SignedAssertion(token=token, issued_at=issued_at, expires_at=expires_at)
