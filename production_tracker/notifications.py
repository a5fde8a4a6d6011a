"""Fire-and-forget change notifications for connected clients."""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Mapping

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Mapping[str, Any]], None]

INVENTORY_CHANGED = "inventory-changed"
ORDER_CHANGED = "order-changed"
ORDER_DELETED = "order-deleted"
CARD_CHANGED = "card-changed"
CARD_DELETED = "card-deleted"


class NotificationHub:
    """Fan out ``publish`` calls to subscribers.

    Delivery is best effort: a failing subscriber is logged and skipped and
    nothing is reported back to the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(topic, payload)
            except Exception:  # noqa: BLE001 - delivery is best effort
                logger.warning("Notification subscriber failed for %s", topic, exc_info=True)


__all__ = [
    "NotificationHub",
    "Subscriber",
    "INVENTORY_CHANGED",
    "ORDER_CHANGED",
    "ORDER_DELETED",
    "CARD_CHANGED",
    "CARD_DELETED",
]
