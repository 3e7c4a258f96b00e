"""
Typed event dispatcher.

Routes catalog lifecycle events to the handlers registered for their type.
"""
from collections import defaultdict
from typing import Awaitable, Callable, TypeVar

from internal.domain.events import CatalogEvent
from pkg.logger.logger import get_logger


logger = get_logger(__name__)


E = TypeVar("E")

EventHandler = Callable[[E], Awaitable[None]]


class EventDispatcher:
    """
    Single subscription registry for catalog events.

    Handlers are keyed by event class. A failing handler is logged and
    does not prevent the remaining handlers from running.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def register(self, event_type: type[E], handler: EventHandler[E]) -> None:
        """
        Register a handler for an event class.

        Args:
            event_type: Event class to handle.
            handler: Async function receiving the event.
        """
        self._handlers[event_type].append(handler)
        logger.info("Registered handler for event type", event_type=event_type.__name__)

    def handlers_for(self, event_type: type) -> list[EventHandler]:
        """
        Get handlers registered for an event class.

        Args:
            event_type: Event class.

        Returns:
            Registered handlers, in registration order.
        """
        return list(self._handlers.get(event_type, []))

    async def dispatch(self, event: CatalogEvent) -> int:
        """
        Deliver an event to its handlers.

        Args:
            event: Typed catalog event.

        Returns:
            Number of handlers that completed without raising.
        """
        handlers = self._handlers.get(type(event))
        if not handlers:
            logger.warning("No handler registered for event", event=event.name)
            return 0

        completed = 0
        for handler in handlers:
            try:
                await handler(event)
                completed += 1
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event=event.name,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )
        return completed
