"""Pytest configuration and shared fixtures for all tests."""

import copy
import json
from typing import Any, Callable, Dict, Optional

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from src.gateway.webhook.models import WebhookRequest
from src.gateway.webhook.signature import sign

WEBHOOK_SECRET = b"test-secret"

ISSUE_OPENED_PAYLOAD: Dict[str, Any] = {
    "action": "opened",
    "installation": {"id": 42},
    "repository": {"owner": {"login": "o"}, "name": "r"},
    "issue": {"number": 7, "title": "t"},
}


def _make_signed_request(
    payload: Any,
    event_type: Optional[str] = "issues",
    secret: bytes = WEBHOOK_SECRET,
    delivery_id: Optional[str] = "delivery-1",
    method: str = "POST",
    path: str = "/",
    algorithm: str = "sha256",
) -> WebhookRequest:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    header = "X-Hub-Signature-256" if algorithm == "sha256" else "X-Hub-Signature"
    headers = {header: sign(body, secret, algorithm)}
    if event_type is not None:
        headers["X-GitHub-Event"] = event_type
    if delivery_id is not None:
        headers["X-GitHub-Delivery"] = delivery_id
    return WebhookRequest.build(method=method, path=path, body=body, headers=headers)


@pytest.fixture
def webhook_secret() -> bytes:
    return WEBHOOK_SECRET


@pytest.fixture
def signed_request() -> Callable[..., WebhookRequest]:
    """Factory building requests signed the way GitHub signs deliveries."""
    return _make_signed_request


@pytest.fixture
def issue_opened_payload() -> Dict[str, Any]:
    return copy.deepcopy(ISSUE_OPENED_PAYLOAD)


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> bytes:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> bytes:
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
