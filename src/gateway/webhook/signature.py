"""HMAC signature verification for inbound webhooks.

GitHub signs each delivery with the shared webhook secret and sends the
result as ``<algorithm>=<hexdigest>`` in ``X-Hub-Signature-256`` (SHA-256)
or the legacy ``X-Hub-Signature`` (SHA-1) header.
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}


def sign(body: bytes, secret: bytes, algorithm: str = "sha256") -> str:
    """Build the signature header value for ``body``.

    Args:
        body: The raw request body.
        secret: The shared webhook secret.
        algorithm: ``sha1`` or ``sha256``.

    Returns:
        Header value in the form ``sha256=<hexdigest>``.

    Raises:
        ValueError: If the algorithm is not supported.
    """
    digestmod = SUPPORTED_ALGORITHMS.get(algorithm)
    if digestmod is None:
        raise ValueError(f"Unsupported signature algorithm: {algorithm}")
    digest = hmac.new(secret, body, digestmod).hexdigest()
    return f"{algorithm}={digest}"


def verify(raw_body: bytes, signature_header: Optional[str], secret: bytes) -> bool:
    """Check ``signature_header`` against the HMAC of ``raw_body``.

    Never raises: a missing header, unknown algorithm, malformed digest or
    mismatch all return False. The comparison is constant-time.

    Args:
        raw_body: The request body exactly as received.
        signature_header: Value of the signature header, or None.
        secret: The shared webhook secret.

    Returns:
        True if the signature matches, False otherwise.
    """
    if not signature_header or not isinstance(signature_header, str):
        logger.debug("Missing signature header")
        return False

    algorithm, sep, received = signature_header.strip().partition("=")
    if not sep or not received:
        logger.debug("Malformed signature header")
        return False

    digestmod = SUPPORTED_ALGORITHMS.get(algorithm.lower())
    if digestmod is None:
        logger.debug("Unsupported signature algorithm: %s", algorithm)
        return False

    expected = hmac.new(secret, raw_body, digestmod).hexdigest()
    try:
        return hmac.compare_digest(expected, received.lower())
    except TypeError:
        # compare_digest rejects non-ASCII str input
        return False


class SignatureVerifier:
    """Verifier bound to one webhook secret.

    An absent secret is a startup failure, not a per-request one, so the
    constructor refuses to build a verifier without it.
    """

    def __init__(self, secret: bytes):
        if not secret:
            raise ValueError("Webhook secret is required")
        self._secret = secret

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        return verify(raw_body, signature_header, self._secret)
