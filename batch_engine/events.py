"""
Typed events published by the polling engine.

Presentation code subscribes per event type; handlers are fire-and-forget
and an exception in one handler never reaches the publisher.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, List, Type, TypeVar

from config.logging_config import get_logger

from .batch_job import BatchItem

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchEvent:
    """Base class for every published event"""
    batch_id: str


@dataclass(frozen=True)
class ItemCompleted(BatchEvent):
    """An item reached COMPLETED for the first time"""
    item: BatchItem


@dataclass(frozen=True)
class ItemFailed(BatchEvent):
    """An item reached FAILED for the first time"""
    item: BatchItem


@dataclass(frozen=True)
class BatchCompleted(BatchEvent):
    """The worker reported the batch done"""
    completed_count: int
    failed_count: int


@dataclass(frozen=True)
class BatchTimedOut(BatchEvent):
    """Polling ceiling elapsed while the batch was still undone"""
    completed_count: int
    failed_count: int
    total_count: int


E = TypeVar("E", bound=BatchEvent)
EventHandler = Callable[[E], None]


class EventBus:
    """
    Minimal publish/subscribe channel.

    Usage:
        bus = EventBus()
        bus.subscribe(ItemCompleted, lambda e: print(e.item.filename))
        bus.publish(ItemCompleted(batch_id="b1", item=item))

    Subscribing to BatchEvent receives every event.
    """

    def __init__(self):
        self._handlers: DefaultDict[Type[BatchEvent], List[Callable]] = defaultdict(list)

    def subscribe(self, event_type: Type[E], handler: EventHandler) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            Function that removes the subscription
        """
        self._handlers[event_type].append(handler)

        def unsubscribe():
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return unsubscribe

    def publish(self, event: BatchEvent):
        """Deliver an event to every matching handler"""
        logger.debug(f"Publishing {type(event).__name__} for batch {event.batch_id}")
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(f"Event handler error ({type(event).__name__}): {e}")

    def handler_count(self, event_type: Type[BatchEvent]) -> int:
        return len(self._handlers.get(event_type, []))
