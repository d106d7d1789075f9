"""Installation token cache with single-flight refresh.

Tokens are exchanged with the platform's token endpoint on demand and
cached until they come within ``safety_margin`` of expiry.

Refresh algorithm, per installation id:

1. Serve the cached token if it is still fresh. No lock, no network.
2. Otherwise join the in-flight refresh for this installation, or start
   one. Only one refresh per installation runs at a time; every concurrent
   caller awaits the same task. Different installations refresh
   independently.
3. The refresh re-checks the cache, mints a new app assertion, exchanges it
   under a bounded timeout and stores the result.
4. On failure the stale entry is evicted and every waiter receives
   AuthError. The next call starts a new refresh.

Waiters await the refresh through ``asyncio.shield``: a caller that is
cancelled stops waiting, but the shared exchange runs to completion and its
result is still cached for everyone else.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from ..errors import AuthError, KeyMaterialError
from ..events.emitter import EventEmitter, NullEventEmitter
from ..events.models import EventType, GatewayEvent
from .minter import CredentialMinter
from .models import AppIdentity, InstallationToken, SignedAssertion, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = timedelta(seconds=60)
DEFAULT_EXCHANGE_TIMEOUT = 10.0


class TokenExchanger(ABC):
    """Exchanges an app assertion for an installation token.

    Implementations raise AuthError when the platform rejects the request
    or cannot be reached.
    """

    @abstractmethod
    async def exchange(
        self,
        assertion: SignedAssertion,
        installation_id: int,
    ) -> InstallationToken:
        pass


class InstallationTokenCache:
    """Caches installation tokens and serializes refreshes per installation.

    The cache is an explicitly owned component: build one per gateway and
    pass it to whatever needs installation credentials.

    Attributes:
        identity: The app identity assertions are minted for.
        safety_margin: Tokens closer than this to expiry are refreshed first.
        exchange_timeout: Upper bound in seconds on one token exchange.
    """

    def __init__(
        self,
        identity: AppIdentity,
        minter: CredentialMinter,
        exchanger: TokenExchanger,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        exchange_timeout: float = DEFAULT_EXCHANGE_TIMEOUT,
        clock: Optional[Callable[[], datetime]] = None,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.identity = identity
        self.safety_margin = safety_margin
        self.exchange_timeout = exchange_timeout
        self._minter = minter
        self._exchanger = exchanger
        self._clock = clock or utcnow
        self._emitter = event_emitter or NullEventEmitter()
        self._tokens: Dict[int, InstallationToken] = {}
        self._inflight: Dict[int, "asyncio.Task[InstallationToken]"] = {}

    def peek(self, installation_id: int) -> Optional[InstallationToken]:
        """Return the cached entry for an installation, fresh or not."""
        return self._tokens.get(installation_id)

    def invalidate(self, installation_id: int) -> None:
        """Drop the cached token, e.g. after the API rejected it."""
        self._tokens.pop(installation_id, None)

    def is_refreshing(self, installation_id: int) -> bool:
        return installation_id in self._inflight

    def _fresh_entry(self, installation_id: int) -> Optional[InstallationToken]:
        cached = self._tokens.get(installation_id)
        if cached is not None and cached.is_fresh(self._clock(), self.safety_margin):
            return cached
        return None

    async def get_token(self, installation_id: int) -> InstallationToken:
        """Return a token for ``installation_id`` that is safe to use.

        Args:
            installation_id: The installation to authenticate as.

        Returns:
            A token whose expiry is more than ``safety_margin`` away.

        Raises:
            AuthError: If the exchange is rejected, fails or times out.
        """
        cached = self._fresh_entry(installation_id)
        if cached is not None:
            return cached

        task = self._inflight.get(installation_id)
        if task is None:
            task = asyncio.ensure_future(self._refresh(installation_id))
            self._inflight[installation_id] = task
            task.add_done_callback(_consume_result)
        else:
            logger.debug(
                "Joining in-flight token refresh",
                extra={"installation_id": installation_id},
            )

        return await asyncio.shield(task)

    async def _refresh(self, installation_id: int) -> InstallationToken:
        try:
            # Another refresh may have completed since the caller checked
            cached = self._fresh_entry(installation_id)
            if cached is not None:
                return cached

            started = time.monotonic()
            try:
                token = await self._exchange(installation_id)
            except Exception as e:
                self._tokens.pop(installation_id, None)
                logger.error(
                    "Installation token refresh failed",
                    extra={"installation_id": installation_id, "error": str(e)},
                )
                await self._emitter.emit(
                    GatewayEvent(
                        event_type=EventType.TOKEN_REFRESH_FAILED,
                        subject=f"installation:{installation_id}",
                        details={
                            "installation_id": installation_id,
                            "error_message": str(e),
                            "duration_seconds": time.monotonic() - started,
                        },
                    )
                )
                if isinstance(e, AuthError):
                    raise
                raise AuthError(
                    f"Token exchange failed: {e}",
                    installation_id=installation_id,
                ) from e

            self._tokens[installation_id] = token
            logger.info(
                "Installation token refreshed",
                extra={
                    "installation_id": installation_id,
                    "expires_at": token.expires_at.isoformat(),
                },
            )
            await self._emitter.emit(
                GatewayEvent(
                    event_type=EventType.TOKEN_REFRESHED,
                    subject=f"installation:{installation_id}",
                    details={
                        "installation_id": installation_id,
                        "duration_seconds": time.monotonic() - started,
                    },
                )
            )
            return token
        finally:
            if self._inflight.get(installation_id) is asyncio.current_task():
                del self._inflight[installation_id]

    async def _exchange(self, installation_id: int) -> InstallationToken:
        try:
            assertion = self._minter.mint(self.identity, self._clock())
        except KeyMaterialError as e:
            raise AuthError(
                f"Cannot mint app assertion: {e}",
                installation_id=installation_id,
            ) from e

        try:
            token = await asyncio.wait_for(
                self._exchanger.exchange(assertion, installation_id),
                timeout=self.exchange_timeout,
            )
        except asyncio.TimeoutError as e:
            raise AuthError(
                f"Token exchange timed out after {self.exchange_timeout}s",
                installation_id=installation_id,
            ) from e

        if not token.is_fresh(self._clock(), self.safety_margin):
            raise AuthError(
                "Token endpoint returned a token that is already within the safety margin",
                installation_id=installation_id,
            )
        return token


def _consume_result(task: "asyncio.Task[InstallationToken]") -> None:
    # Mark the exception retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()
