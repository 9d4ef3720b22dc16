"""In-process domain event bus.

Single-process dispatch: publish() awaits every subscriber of the event's
type concurrently. A failing subscriber is logged and never affects the
other subscribers or the publisher.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Type

from softfocus.shared.models.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class DomainEventBus:
    """Routes domain events to the coroutines subscribed to their type."""

    def __init__(self):
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        """Register a coroutine function for one event type.

        Args:
            event_type: Exact DomainEvent subclass to listen for
            handler: Coroutine function taking the event
        """
        self._handlers.setdefault(event_type, []).append(handler)

        logger.info(
            "EVENT_HANDLER_SUBSCRIBED",
            extra={
                "event_type": event_type.__name__,
                "handler": getattr(handler, "__qualname__", repr(handler)),
                "handler_count": len(self._handlers[event_type]),
            }
        )

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        return list(self._handlers.get(event_type, []))

    async def publish(self, event: DomainEvent) -> int:
        """Deliver an event to its subscribers.

        Args:
            event: Event to deliver

        Returns:
            Number of handlers that completed without raising
        """
        handlers = self.handlers_for(type(event))

        logger.info(
            "EVENT_PUBLISHING",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_name,
                "handler_count": len(handlers),
            }
        )

        if not handlers:
            logger.warning(
                "EVENT_NO_HANDLERS",
                extra={"event_id": event.event_id, "event_type": event.event_name}
            )
            return 0

        results = await asyncio.gather(
            *(self._run_handler(handler, event) for handler in handlers)
        )
        succeeded = sum(1 for ok in results if ok)

        logger.info(
            "EVENT_PUBLISHED",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_name,
                "succeeded": succeeded,
                "failed": len(handlers) - succeeded,
            }
        )
        return succeeded

    async def _run_handler(self, handler: EventHandler, event: DomainEvent) -> bool:
        try:
            await handler(event)
            return True
        except Exception as e:
            logger.error(
                "EVENT_HANDLER_FAILED",
                extra={
                    "event_id": event.event_id,
                    "event_type": event.event_name,
                    "handler": getattr(handler, "__qualname__", repr(handler)),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False
