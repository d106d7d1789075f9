"""Event routing for verified webhook deliveries.

The router maps an event type (the ``X-GitHub-Event`` header value) to an
ordered sequence of handlers. Handlers registered under ``*`` receive every
event after the type-specific handlers have run.

Unknown event types are accepted and ignored: GitHub adds event types over
time and an unhandled type is not a delivery failure.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Tuple

from .models import HandlerFailure, HandlerResult, RouterResult, VerifiedEvent

logger = logging.getLogger(__name__)

WILDCARD = "*"


class EventHandler(ABC):
    """A single-method capability invoked for matching events.

    Implementations return a HandlerResult. Returning a failed result or
    raising both count as a failure for this handler only; the remaining
    handlers for the event still run.

    Example:
        >>> class LogIssues(EventHandler):
        ...     async def handle(self, event: VerifiedEvent) -> HandlerResult:
        ...         logger.info("issue %s", event.action)
        ...         return HandlerResult.ok()
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def handle(self, event: VerifiedEvent) -> HandlerResult:
        """Process one verified event."""
        pass


HandlerCallback = Callable[[VerifiedEvent], Awaitable[Optional[HandlerResult]]]


class CallbackHandler(EventHandler):
    """Adapts a coroutine function to the EventHandler interface.

    A callback that returns None is treated as a success.
    """

    def __init__(self, callback: HandlerCallback, name: Optional[str] = None):
        self._callback = callback
        self._name = name or getattr(callback, "__name__", "callback")

    @property
    def name(self) -> str:
        return self._name

    async def handle(self, event: VerifiedEvent) -> HandlerResult:
        result = await self._callback(event)
        if result is None:
            return HandlerResult.ok()
        return result


class EventRouter:
    """Dispatches verified events to registered handlers.

    The registration table maps each event type to an immutable tuple of
    handlers. Registering replaces the tuple, so a dispatch in progress
    keeps iterating the snapshot it started with.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, Tuple[EventHandler, ...]] = {}

    def register(self, event_type: str, handler: EventHandler) -> None:
        """Append ``handler`` to the handlers for ``event_type``.

        Args:
            event_type: Event type tag, or ``*`` for every event.
            handler: The handler to invoke.
        """
        if not event_type:
            raise ValueError("event_type cannot be empty")
        self._handlers[event_type] = self._handlers.get(event_type, ()) + (handler,)
        logger.info(
            "Registered handler %s for %s events",
            handler.name,
            event_type,
        )

    def on(self, event_type: str) -> Callable[[HandlerCallback], HandlerCallback]:
        """Decorator form of ``register`` for coroutine functions.

        Example:
            >>> @router.on("issues")
            ... async def log_issue(event):
            ...     logger.info("issue event %s", event.action)
        """

        def decorator(callback: HandlerCallback) -> HandlerCallback:
            self.register(event_type, CallbackHandler(callback))
            return callback

        return decorator

    def handlers_for(self, event_type: str) -> Tuple[EventHandler, ...]:
        """Handlers that will run for ``event_type``, in invocation order."""
        specific = self._handlers.get(event_type, ())
        if event_type == WILDCARD:
            return specific
        return specific + self._handlers.get(WILDCARD, ())

    async def dispatch(self, event: VerifiedEvent) -> RouterResult:
        """Invoke every handler registered for the event's type.

        Handlers run sequentially in registration order. A failure in one
        handler is recorded and does not stop the rest.

        Args:
            event: The verified event to dispatch.

        Returns:
            RouterResult describing how many handlers ran and which failed.
        """
        handlers = self.handlers_for(event.event_type)
        result = RouterResult(event_type=event.event_type)

        if not handlers:
            logger.debug(
                "No handlers registered for event type %s",
                event.event_type,
                extra={"delivery_id": event.delivery_id},
            )
            return result

        for handler in handlers:
            result.invoked += 1
            try:
                outcome = await handler.handle(event)
                if not isinstance(outcome, HandlerResult):
                    outcome = HandlerResult.failed(f"invalid handler result: {outcome!r}")
            except Exception as e:
                logger.exception(
                    "Handler %s raised while processing %s event",
                    handler.name,
                    event.event_type,
                    extra={
                        "delivery_id": event.delivery_id,
                        "handler": handler.name,
                    },
                )
                result.failures.append(
                    HandlerFailure(handler=handler.name, message=str(e) or type(e).__name__)
                )
                continue

            if not outcome.success:
                logger.warning(
                    "Handler %s failed for %s event: %s",
                    handler.name,
                    event.event_type,
                    outcome.message,
                    extra={
                        "delivery_id": event.delivery_id,
                        "handler": handler.name,
                    },
                )
                result.failures.append(
                    HandlerFailure(handler=handler.name, message=outcome.message)
                )

        return result
