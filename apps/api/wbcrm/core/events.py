from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class LifecycleEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[LifecycleEvent], None]


class LifecycleEventBus:
    """Synchronous in-process fan-out of CRM lifecycle events.

    A subscription pattern ending in ``.*`` matches every event under that prefix,
    so ``crm.share.*`` receives both ``crm.share.granted`` and ``crm.share.revoked``.
    Handlers run in subscription order and their exceptions propagate to the publisher.
    """

    def __init__(self) -> None:
        self._exact: dict[str, list[EventHandler]] = defaultdict(list)
        self._prefixed: list[tuple[str, EventHandler]] = []

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        if pattern.endswith(".*"):
            self._prefixed.append((pattern[:-1], handler))
        else:
            self._exact[pattern].append(handler)

    def handlers_for(self, event_name: str) -> list[EventHandler]:
        handlers = list(self._exact.get(event_name, []))
        handlers.extend(handler for prefix, handler in self._prefixed if event_name.startswith(prefix))
        return handlers

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = LifecycleEvent(name=event_name, payload=payload)
        handlers = self.handlers_for(event_name)
        for handler in handlers:
            handler(event)
        return len(handlers)

    def clear(self) -> None:
        self._exact.clear()
        self._prefixed.clear()


event_bus = LifecycleEventBus()
