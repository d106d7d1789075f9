"""Request-handling contract between the HTTP layer and the gateway core.

The Gateway takes a WebhookRequest and returns a ResponseDirective:

- ``not_found`` for paths other than the webhook path
- ``ok`` for non-POST requests (health-check convenience; body untouched)
- ``rejected`` when the signature does not verify or the event header is
  missing; the HTTP layer must answer with a non-2xx status so GitHub
  retries the delivery
- ``ok`` for every verified delivery, whatever its handlers did: a 2xx means
  "received", and processing failures are observed out of band
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict

from .errors import ParseError, VerificationError
from .events.emitter import EventEmitter, NullEventEmitter
from .events.models import EventType, GatewayEvent
from .webhook.models import HandlerFailure, RouterResult, VerifiedEvent, WebhookRequest
from .webhook.parser import parse_verified_event
from .webhook.router import EventRouter
from .webhook.signature import SignatureVerifier

logger = logging.getLogger(__name__)


class DirectiveKind(str, Enum):
    OK = "ok"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


class ResponseDirective(BaseModel):
    """What the HTTP layer should answer.

    Attributes:
        kind: ok, rejected or not_found.
        status_code: Suggested HTTP status for the kind.
        reason: Why the request was rejected, if it was.
        result: Router outcome when handlers ran before the response.
    """

    model_config = ConfigDict(frozen=True)

    kind: DirectiveKind
    status_code: int
    reason: Optional[str] = None
    result: Optional[RouterResult] = None

    @classmethod
    def ok(cls, result: Optional[RouterResult] = None) -> "ResponseDirective":
        return cls(kind=DirectiveKind.OK, status_code=200, result=result)

    @classmethod
    def rejected(cls, reason: str, status_code: int = 401) -> "ResponseDirective":
        return cls(kind=DirectiveKind.REJECTED, status_code=status_code, reason=reason)

    @classmethod
    def not_found(cls) -> "ResponseDirective":
        return cls(kind=DirectiveKind.NOT_FOUND, status_code=404)


def _normalize_path(path: str) -> str:
    return path.rstrip("/") or "/"


class Gateway:
    """Composes verification, parsing and routing for inbound webhooks.

    Attributes:
        webhook_path: The only path deliveries are accepted on.
        dispatch_in_background: If True, handlers run after ``handle``
            returns; call ``drain`` on shutdown to let them finish.
    """

    def __init__(
        self,
        verifier: SignatureVerifier,
        router: EventRouter,
        webhook_path: str = "/",
        dispatch_in_background: bool = False,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.webhook_path = _normalize_path(webhook_path)
        self.dispatch_in_background = dispatch_in_background
        self._verifier = verifier
        self._router = router
        self._emitter = event_emitter or NullEventEmitter()
        self._pending: Set["asyncio.Task[RouterResult]"] = set()

    @property
    def router(self) -> EventRouter:
        return self._router

    @property
    def pending(self) -> int:
        """Number of background dispatches still running."""
        return len(self._pending)

    async def handle(self, request: WebhookRequest) -> ResponseDirective:
        """Process one inbound request.

        Verification and parse failures never escape as exceptions; they
        become directives.

        Args:
            request: The inbound request.

        Returns:
            The directive for the HTTP layer.
        """
        if _normalize_path(request.path) != self.webhook_path:
            return ResponseDirective.not_found()

        if request.method != "POST":
            return ResponseDirective.ok()

        try:
            self._authenticate(request)
        except VerificationError as e:
            logger.warning(
                "Rejected webhook delivery: %s",
                e,
                extra={"delivery_id": request.delivery_id},
            )
            await self._emit_rejected(request, str(e))
            return ResponseDirective.rejected(str(e), status_code=401)

        if not request.event_type:
            reason = "missing event header"
            logger.warning(
                "Rejected webhook delivery: %s",
                reason,
                extra={"delivery_id": request.delivery_id},
            )
            await self._emit_rejected(request, reason)
            return ResponseDirective.rejected(reason, status_code=400)

        try:
            event = parse_verified_event(request)
        except ParseError as e:
            # GitHub would resend the same malformed payload; acknowledge it
            logger.warning(
                "Dropping unparseable %s delivery: %s",
                e.event_type,
                e,
                extra={"delivery_id": e.delivery_id},
            )
            return ResponseDirective.ok()

        await self._emitter.emit(
            GatewayEvent(
                event_type=EventType.DELIVERY_ACCEPTED,
                subject=event.delivery_id or "unknown",
                details={
                    "webhook_event": event.event_type,
                    "action": event.action,
                    "installation_id": event.installation_id,
                    "handlers": len(self._router.handlers_for(event.event_type)),
                },
            )
        )

        if self.dispatch_in_background:
            task = asyncio.ensure_future(self._dispatch(event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return ResponseDirective.ok()

        return ResponseDirective.ok(result=await self._dispatch(event))

    def _authenticate(self, request: WebhookRequest) -> None:
        if not self._verifier.verify(request.body, request.signature):
            raise VerificationError("bad signature")

    async def _emit_rejected(self, request: WebhookRequest, reason: str) -> None:
        await self._emitter.emit(
            GatewayEvent(
                event_type=EventType.DELIVERY_REJECTED,
                subject=request.delivery_id or "unknown",
                details={
                    "webhook_event": request.event_type or "unknown",
                    "reason": reason,
                },
            )
        )

    async def _dispatch(self, event: VerifiedEvent) -> RouterResult:
        try:
            result = await self._router.dispatch(event)
        except Exception as e:
            logger.exception(
                "Dispatch of %s event failed",
                event.event_type,
                extra={"delivery_id": event.delivery_id},
            )
            result = RouterResult(
                event_type=event.event_type,
                failures=[HandlerFailure(handler="router", message=str(e))],
            )

        for failure in result.failures:
            await self._emitter.emit(
                GatewayEvent(
                    event_type=EventType.HANDLER_FAILED,
                    subject=event.delivery_id or "unknown",
                    details={
                        "webhook_event": event.event_type,
                        "handler": failure.handler,
                        "error_message": failure.message,
                    },
                )
            )
        return result

    async def drain(self) -> None:
        """Wait for background dispatches to finish."""
        if self._pending:
            logger.info("Waiting for %d background dispatches", len(self._pending))
            await asyncio.gather(*list(self._pending), return_exceptions=True)
