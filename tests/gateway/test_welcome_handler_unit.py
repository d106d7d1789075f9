"""Unit tests for WelcomeCommentHandler."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import List
from unittest.mock import AsyncMock, MagicMock

import httpx

from src.gateway.auth.minter import CredentialMinter
from src.gateway.auth.models import AppIdentity
from src.gateway.auth.token_cache import InstallationTokenCache
from src.gateway.errors import AuthError
from src.gateway.github.app_client import GitHubAppClient, InstallationClientFactory
from src.gateway.github.client import GitHubAPIError
from src.gateway.handlers.welcome import DEFAULT_WELCOME_COMMENT, WelcomeCommentHandler
from src.gateway.webhook.models import VerifiedEvent


def run_async(coro):
    return asyncio.run(coro)


def _event(payload, event_type="issues") -> VerifiedEvent:
    return VerifiedEvent(
        event_type=event_type,
        action=payload.get("action"),
        installation_id=(payload.get("installation") or {}).get("id"),
        delivery_id="delivery-1",
        payload=payload,
    )


def _mock_factory(client=None, error=None):
    factory = MagicMock(spec=InstallationClientFactory)
    if error is not None:
        factory.as_installation = AsyncMock(side_effect=error)
    else:
        factory.as_installation = AsyncMock(return_value=client)
    return factory


def _mock_client():
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.create_comment = AsyncMock(return_value={"id": 1})
    return client


class TestWelcomeCommentHandler:
    def test_opened_issue_gets_comment(self, issue_opened_payload):
        client = _mock_client()
        factory = _mock_factory(client)
        handler = WelcomeCommentHandler(factory)

        result = run_async(handler.handle(_event(issue_opened_payload)))

        assert result.success
        factory.as_installation.assert_awaited_once_with(42)
        client.create_comment.assert_awaited_once_with(
            owner="o",
            repo="r",
            issue_number=7,
            body=DEFAULT_WELCOME_COMMENT,
        )
        client.__aexit__.assert_awaited_once()

    def test_untitled_issue_still_welcomed(self, issue_opened_payload):
        del issue_opened_payload["issue"]["title"]
        client = _mock_client()

        result = run_async(
            WelcomeCommentHandler(_mock_factory(client)).handle(_event(issue_opened_payload))
        )

        assert result.success
        client.create_comment.assert_awaited_once()

    def test_custom_comment_used(self, issue_opened_payload):
        client = _mock_client()
        handler = WelcomeCommentHandler(_mock_factory(client), comment="Thanks!")

        run_async(handler.handle(_event(issue_opened_payload)))

        assert client.create_comment.await_args.kwargs["body"] == "Thanks!"

    def test_other_actions_ignored(self, issue_opened_payload):
        issue_opened_payload["action"] = "closed"
        factory = _mock_factory(_mock_client())

        result = run_async(WelcomeCommentHandler(factory).handle(_event(issue_opened_payload)))

        assert result.success
        factory.as_installation.assert_not_awaited()

    def test_missing_installation_is_a_failure(self, issue_opened_payload):
        del issue_opened_payload["installation"]
        factory = _mock_factory(_mock_client())

        result = run_async(WelcomeCommentHandler(factory).handle(_event(issue_opened_payload)))

        assert not result.success
        factory.as_installation.assert_not_awaited()

    def test_auth_failure_reported(self, issue_opened_payload):
        factory = _mock_factory(error=AuthError("Bad credentials", installation_id=42))

        result = run_async(WelcomeCommentHandler(factory).handle(_event(issue_opened_payload)))

        assert not result.success
        assert "42" in result.message

    def test_api_failure_reported(self, issue_opened_payload):
        client = _mock_client()
        client.create_comment = AsyncMock(
            side_effect=GitHubAPIError("GitHub API error: 403", status_code=403)
        )

        result = run_async(
            WelcomeCommentHandler(_mock_factory(client)).handle(_event(issue_opened_payload))
        )

        assert not result.success
        assert "o/r#7" in result.message


class TestWelcomeEndToEnd:
    def test_token_exchange_then_comment(self, issue_opened_payload, private_key_pem):
        seen: List[httpx.Request] = []

        def handler(request):
            seen.append(request)
            if request.url.path == "/app/installations/42/access_tokens":
                return httpx.Response(
                    201,
                    json={
                        "token": "ghs_install",
                        "expires_at": (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat(),
                    },
                )
            return httpx.Response(201, json={"id": 1})

        async def scenario():
            transport = httpx.MockTransport(handler)
            app_client = GitHubAppClient(transport=transport)
            cache = InstallationTokenCache(
                identity=AppIdentity(app_id=1, private_key=private_key_pem),
                minter=CredentialMinter(),
                exchanger=app_client,
            )
            welcome = WelcomeCommentHandler(InstallationClientFactory(cache, transport=transport))
            result = await welcome.handle(_event(issue_opened_payload))
            await app_client.close()
            return result

        result = run_async(scenario())

        assert result.success
        assert [r.url.path for r in seen] == [
            "/app/installations/42/access_tokens",
            "/repos/o/r/issues/7/comments",
        ]
        assert seen[1].headers["authorization"] == "Bearer ghs_install"
        assert json.loads(seen[1].content) == {"body": DEFAULT_WELCOME_COMMENT}
