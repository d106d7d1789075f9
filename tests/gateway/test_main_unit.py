"""HTTP-level tests for the FastAPI application.

The app is started through its lifespan with configuration from GATEWAY_*
environment variables, so these tests exercise the same wiring as a real
deployment, minus outbound GitHub calls.
"""

import json

import pytest
from fastapi.testclient import TestClient

from src.gateway.errors import KeyMaterialError
from src.gateway.main import app
from src.gateway.webhook.signature import sign

SECRET = "http-test-secret"


@pytest.fixture
def gateway_env(monkeypatch, tmp_path, private_key_pem):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GATEWAY_WEBHOOK_SECRET", SECRET)
    monkeypatch.setenv("GATEWAY_APP_ID", "12345")
    monkeypatch.setenv("GATEWAY_PRIVATE_KEY", private_key_pem.decode("utf-8"))
    monkeypatch.setenv("GATEWAY_DISPATCH_IN_BACKGROUND", "false")
    monkeypatch.setenv("GATEWAY_GITHUB_BASE_URL", "http://github.invalid")


@pytest.fixture
def client(gateway_env):
    with TestClient(app) as test_client:
        yield test_client


def _signed_headers(body: bytes, event_type: str = "ping") -> dict:
    return {
        "Content-Type": "application/json",
        "X-GitHub-Event": event_type,
        "X-GitHub-Delivery": "delivery-http-1",
        "X-Hub-Signature-256": sign(body, SECRET.encode("utf-8")),
    }


class TestHttpSurface:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_get_on_webhook_path_is_ok(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_signed_delivery_accepted(self, client):
        body = json.dumps({"zen": "Design for failure."}).encode("utf-8")

        response = client.post("/", content=body, headers=_signed_headers(body))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_tampered_delivery_rejected(self, client):
        body = json.dumps({"zen": "Design for failure."}).encode("utf-8")
        headers = _signed_headers(body)

        response = client.post("/", content=body + b" ", headers=headers)

        assert response.status_code == 401
        assert response.json() == {"status": "rejected", "reason": "bad signature"}

    def test_missing_event_header_is_bad_request(self, client):
        body = b"{}"
        headers = _signed_headers(body)
        del headers["X-GitHub-Event"]

        response = client.post("/", content=body, headers=headers)

        assert response.status_code == 400

    def test_unknown_path_not_found(self, client):
        response = client.post("/nope", content=b"{}")

        assert response.status_code == 404
        assert response.text == "no such location"

    def test_metrics_exposed(self, client):
        body = b"{}"
        client.post("/", content=body, headers=_signed_headers(body))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "gateway_deliveries_total" in response.text


class TestStartup:
    def test_invalid_private_key_fails_startup(self, gateway_env, monkeypatch):
        monkeypatch.setenv("GATEWAY_PRIVATE_KEY", "not a key")

        with pytest.raises(KeyMaterialError):
            with TestClient(app):
                pass

    def test_missing_private_key_file_fails_startup(self, gateway_env, monkeypatch):
        monkeypatch.delenv("GATEWAY_PRIVATE_KEY")

        with pytest.raises(KeyMaterialError):
            with TestClient(app):
                pass

    def test_private_key_read_from_file(self, gateway_env, monkeypatch, tmp_path, private_key_pem):
        monkeypatch.delenv("GATEWAY_PRIVATE_KEY")
        (tmp_path / "private-key.pem").write_bytes(private_key_pem)

        with TestClient(app) as test_client:
            assert test_client.get("/health").status_code == 200
