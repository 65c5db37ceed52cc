"""
Notification emitter port and the two in-process implementations.

The fulfillment core calls ``emit(event_type, payload)`` after a unit of
work commits.  Delivery, retries and channel selection belong to whatever
sits behind the emitter.  An emitter failure is logged and never undoes
the committed operation.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from market_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationType(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_STATUS_CHANGED = "order_status_changed"
    ORDER_CANCELLED = "order_cancelled"
    CASHBACK_EARNED = "cashback_earned"
    LOW_STOCK = "low_stock"


@dataclass(frozen=True)
class Notification:
    event_type: NotificationType
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationEmitter(Protocol):
    def emit(self, event_type: NotificationType, payload: dict[str, Any]) -> None: ...


class LoggingNotificationEmitter:
    """Default emitter: writes each event to the structured log."""

    def emit(self, event_type: NotificationType, payload: dict[str, Any]) -> None:
        logger.info(
            "notification_emitted",
            extra={"event_type": event_type.value, "payload": payload},
        )


class InMemoryNotificationEmitter:
    """Collects events in memory; used by tests and local tooling."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[Notification] = []

    def emit(self, event_type: NotificationType, payload: dict[str, Any]) -> None:
        with self._lock:
            self._events.append(Notification(event_type, dict(payload)))

    @property
    def events(self) -> list[Notification]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: NotificationType) -> list[Notification]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


def emit_all(emitter: NotificationEmitter, notifications: list[Notification]) -> int:
    """
    Emit each notification, logging failures.

    Returns:
        Number of notifications the emitter accepted.
    """
    delivered = 0
    for notification in notifications:
        try:
            emitter.emit(notification.event_type, notification.payload)
            delivered += 1
        except Exception:
            logger.warning(
                "notification_emit_failed",
                extra={"event_type": notification.event_type.value},
                exc_info=True,
            )
    return delivered


def order_payload(order: Any, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "order_id": str(order.id),
        "order_number": order.order_number,
        "customer_id": str(order.customer_id),
        "status": order.status,
        "final_price": str(order.final_price),
    }
    for key, value in extra.items():
        payload[key] = value.isoformat() if isinstance(value, datetime) else value
    return payload
