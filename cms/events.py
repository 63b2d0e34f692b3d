"""
In-process event bus for content lifecycle notifications.

Events are dispatched only after the triggering transaction has
committed.  Each listener runs in its own asyncio task, so the emitting
request never waits for it, and a listener that raises is logged and
otherwise ignored: it cannot roll back or fail the request.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable

from cms.schemas import ContentResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContentEvent:
    content: ContentResponse


@dataclass(frozen=True)
class ContentCreated(ContentEvent):
    pass


@dataclass(frozen=True)
class ContentUpdated(ContentEvent):
    pass


@dataclass(frozen=True)
class ContentPublished(ContentEvent):
    pass


Listener = Callable[[ContentEvent], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._listeners: dict[type[ContentEvent], list[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: type[ContentEvent], listener: Listener) -> None:
        if listener not in self._listeners[event_type]:
            self._listeners[event_type].append(listener)

    def clear(self) -> None:
        self._listeners.clear()

    def dispatch(self, event: ContentEvent) -> None:
        """Schedule every listener subscribed to *event*'s type (or a base type)."""
        for event_type in type(event).__mro__:
            for listener in self._listeners.get(event_type, ()):
                task = asyncio.create_task(self._deliver(listener, event))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every in-flight listener task (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @staticmethod
    async def _deliver(listener: Listener, event: ContentEvent) -> None:
        try:
            await listener(event)
        except Exception:
            logger.exception(
                "Listener %s failed handling %s for content %d",
                getattr(listener, "__name__", repr(listener)),
                type(event).__name__,
                event.content.id,
            )


event_bus = EventBus()
