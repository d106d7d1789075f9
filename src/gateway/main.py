"""FastAPI application entry point for the webhook gateway.

This module wires configuration, the GitHub App credentials, the token
cache and the event router into a Gateway, and exposes it over HTTP:

- ``GET /health``: liveness probe
- ``GET /metrics``: Prometheus metrics
- any other path and method: handed to ``Gateway.handle``

Bad key material or a missing secret fails startup instead of the first
request.
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .auth.minter import CredentialMinter
from .auth.models import AppIdentity
from .auth.token_cache import InstallationTokenCache
from .config import GatewaySettings, get_settings
from .events.emitter import EventEmitter, EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .gateway import DirectiveKind, Gateway
from .github.app_client import GitHubAppClient, InstallationClientFactory
from .handlers.welcome import WelcomeCommentHandler
from .webhook.models import WebhookRequest
from .webhook.router import EventRouter
from .webhook.signature import SignatureVerifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

WEBHOOK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: GatewaySettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Gateway configuration:")
    logger.info(f"  Webhook Path: {settings.webhook_path}")
    logger.info(f"  Webhook Secret: {_redact_secret(settings.webhook_secret)}")
    logger.info(f"  App ID: {settings.app_id}")
    if settings.private_key:
        logger.info("  Private Key: <inline>")
    else:
        logger.info(f"  Private Key Path: {settings.private_key_path}")
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  Token Safety Margin: {settings.token_safety_margin_seconds}s")
    logger.info(f"  Token Exchange Timeout: {settings.token_exchange_timeout_seconds}s")
    logger.info(f"  Assertion TTL: {settings.assertion_ttl_seconds}s")
    logger.info(f"  Background Dispatch: {settings.dispatch_in_background}")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")


def _build_gateway(
    cfg: GatewaySettings,
    app_client: GitHubAppClient,
    event_emitter: EventEmitter,
) -> Gateway:
    """Wire credentials, token cache, router and handlers into a Gateway.

    Args:
        cfg: Validated gateway settings.
        app_client: Client used for the token exchange.
        event_emitter: Sink for gateway observability events.

    Returns:
        Fully wired Gateway.

    Raises:
        KeyMaterialError: If the private key is missing or unusable.
    """
    identity = AppIdentity(app_id=cfg.app_id, private_key=cfg.load_private_key())
    minter = CredentialMinter(ttl_seconds=cfg.assertion_ttl_seconds)
    minter.check(identity)

    token_cache = InstallationTokenCache(
        identity=identity,
        minter=minter,
        exchanger=app_client,
        safety_margin=timedelta(seconds=cfg.token_safety_margin_seconds),
        exchange_timeout=cfg.token_exchange_timeout_seconds,
        event_emitter=event_emitter,
    )
    client_factory = InstallationClientFactory(
        token_cache=token_cache,
        base_url=cfg.github_base_url,
    )

    router = EventRouter()
    router.register(
        "issues",
        WelcomeCommentHandler(client_factory, comment=cfg.welcome_comment),
    )

    return Gateway(
        verifier=SignatureVerifier(cfg.webhook_secret.encode("utf-8")),
        router=router,
        webhook_path=cfg.webhook_path,
        dispatch_in_background=cfg.dispatch_in_background,
        event_emitter=event_emitter,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Logging configuration (with secrets redacted)
    - Private key validation and gateway wiring
    - Draining background dispatches and closing clients on shutdown
    """
    logger.info("Webhook gateway starting up...")

    settings = get_settings()
    _log_configuration(settings)

    event_emitter = create_event_emitter(
        [EventSinkType.LOGGING, EventSinkType.METRICS]
    )
    app_client = GitHubAppClient(
        base_url=settings.github_base_url,
        timeout=settings.token_exchange_timeout_seconds,
    )
    try:
        app.state.gateway = _build_gateway(settings, app_client, event_emitter)
    except Exception:
        await app_client.close()
        raise

    logger.info("Webhook gateway started successfully")

    yield

    logger.info("Webhook gateway shutting down...")

    await app.state.gateway.drain()
    app.state.gateway = None
    await app_client.close()
    await event_emitter.close()

    logger.info("Webhook gateway shutdown complete")


app = FastAPI(
    title="Webhook Gateway",
    description="Verified GitHub App webhook ingestion with installation token management",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_metrics_output().decode("utf-8"))


@app.api_route("/{full_path:path}", methods=WEBHOOK_METHODS)
async def webhook(request: Request) -> Response:
    """Hand every other request to the gateway and map its directive.

    Returns:
        200 for ok, 401/400 for rejected deliveries, 404 otherwise.
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        logger.error("Gateway not initialized")
        return JSONResponse(
            {"status": "error", "message": "Gateway not initialized"},
            status_code=503,
        )

    directive = await gateway.handle(
        WebhookRequest.build(
            method=request.method,
            path=request.url.path,
            body=await request.body(),
            headers=request.headers,
        )
    )

    if directive.kind == DirectiveKind.NOT_FOUND:
        return PlainTextResponse("no such location", status_code=404)
    if directive.kind == DirectiveKind.REJECTED:
        return JSONResponse(
            {"status": "rejected", "reason": directive.reason},
            status_code=directive.status_code,
        )
    return JSONResponse({"status": "ok"}, status_code=200)


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.gateway.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
