"""EventHandlerRegistry — maps outbox event types to in-process handlers."""

import logging
from collections import defaultdict
from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventHandlerRegistry:
    """Class-level registry; handlers are plain callables taking the payload dict."""

    _handlers: dict[str, list[Callable[[dict], None]]] = defaultdict(list)

    @classmethod
    def register(cls, event_type: str, handler: Callable[[dict], None]) -> None:
        if handler in cls._handlers[event_type]:
            return
        cls._handlers[event_type].append(handler)
        logger.info("Registered %s for %s", handler.__name__, event_type)

    @classmethod
    def get_handlers(cls, event_type: str) -> list[Callable[[dict], None]]:
        return list(cls._handlers.get(event_type, []))

    @classmethod
    def dispatch(cls, event_type: str, payload: dict) -> list[str]:
        """Run every handler for the event type and return the error messages.

        A failing handler does not stop the others.
        """
        errors: list[str] = []
        for handler in cls.get_handlers(event_type):
            try:
                handler(payload)
            except Exception as exc:
                logger.exception("Handler %s failed for %s", handler.__name__, event_type)
                errors.append(f"{handler.__name__}: {exc}")
        return errors

    @classmethod
    def clear(cls) -> None:
        cls._handlers.clear()
