"""
In-process section event bus.

Production, dyeing and QA collaborators subscribe to the section statuses
they consume (READY_FOR_PRODUCTION, READY_FOR_DYEING, READY_FOR_CLIENT_APPROVAL).
Handlers run synchronously inside the publishing transaction and must not
write to the database themselves.
"""
import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionStatusChanged:
    """A section moved to a status other workflows listen for."""
    order_id: uuid.UUID
    order_item_id: uuid.UUID
    section: str
    from_status: Optional[str]
    to_status: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return self.to_status


Handler = Callable[[SectionStatusChanged], Any]


class SectionEventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, status: str, handler: Handler) -> None:
        logger.debug("Subscribing %s to %s", getattr(handler, "__name__", handler), status)
        with self._lock:
            if handler not in self._subscribers[status]:
                self._subscribers[status].append(handler)

    def unsubscribe(self, status: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(status, [])
            if handler in handlers:
                handlers.remove(handler)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def publish(self, event: SectionStatusChanged) -> List[Any]:
        handlers = list(self._subscribers.get(event.event_type, []))
        logger.debug(
            "Publishing %s for item %s section %s to %d handlers",
            event.event_type, event.order_item_id, event.section, len(handlers),
        )
        results: List[Any] = []
        for handler in handlers:
            results.append(handler(event))
        return results


section_events = SectionEventBus()
