"""Best-effort notifications.

Components that emit events receive a notifier explicitly (see
``storefront.api.deps.get_notifier``). A failing notifier is logged and never
fails the operation that triggered it.
"""
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.db.models import Notification, NotificationType, OrderStatus
from storefront.kafka.producer import envelope, publish as kafka_publish

log = get_logger("notifications")

ADMIN_CHANNEL = "role:admin"

STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: (NotificationType.ORDER_CONFIRMED, "Order {code} has been confirmed."),
    OrderStatus.PROCESSING: (NotificationType.ORDER_PROCESSING, "Order {code} is being prepared."),
    OrderStatus.SHIPPING: (NotificationType.ORDER_SHIPPING, "Order {code} is on its way."),
    OrderStatus.DELIVERED: (NotificationType.ORDER_DELIVERED, "Order {code} has been delivered."),
}


class Notifier(Protocol):
    def notify(self, recipient: str, type: NotificationType, content: str) -> None: ...


class NotificationService:
    """Stores a notification row and publishes it to Kafka.

    Call it after the triggering unit of work has been committed: on failure it
    rolls back its own session state.
    """

    def __init__(self, db: Session, publish: Optional[Callable[[str, str, dict], None]] = None):
        self.db = db
        if publish is None and settings.KAFKA_ENABLED:
            publish = kafka_publish
        self.publish = publish

    def notify(self, recipient: str, type: NotificationType, content: str) -> None:
        try:
            note = Notification(recipient=str(recipient), type=type, content=content[:1000])
            self.db.add(note)
            self.db.commit()
            if self.publish is not None:
                self.publish(settings.TOPIC_NOTIFICATION_EVENTS, str(recipient), envelope("notification.created", {
                    "notification_id": note.id,
                    "recipient": note.recipient,
                    "notification_type": note.type.value,
                    "content": note.content,
                }))
        except Exception:
            self.db.rollback()
            log.exception("failed to emit %s notification to %s", getattr(type, "value", type), recipient)


def safe_notify(notifier: Notifier, recipient: str, type: NotificationType, content: str) -> None:
    """Guard for notifiers that do not swallow their own errors."""
    try:
        notifier.notify(recipient, type, content)
    except Exception:
        log.exception("notifier raised while sending %s to %s", getattr(type, "value", type), recipient)


def notify_status_change(notifier: Notifier, order) -> None:
    if not order.user_id or order.status not in STATUS_MESSAGES:
        return
    ntype, template = STATUS_MESSAGES[order.status]
    safe_notify(notifier, order.user_id, ntype, template.format(code=order.order_code))


def notify_order_requested(notifier: Notifier, order) -> None:
    safe_notify(
        notifier,
        ADMIN_CHANNEL,
        NotificationType.ORDER_REQUESTED,
        f"A customer has placed order {order.order_code}.",
    )
