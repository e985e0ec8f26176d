"""Payment gateway callbacks.

The gateway may deliver a callback several times, out of order, or not at
all, and it disables webhooks that answer with errors. ``handle_callback``
therefore never raises: every outcome, including internal failures, is an
acknowledgement.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from storefront.core.logging import get_logger
from storefront.services.notifications import Notifier, notify_order_requested
from storefront.services.orders import OrderService
from storefront.services.payos import SUCCESS_CODE

log = get_logger("reconciliation")


@dataclass(frozen=True)
class Ack:
    success: bool = True
    outcome: str = "ignored"


class PaymentReconciliationHandler:
    def __init__(self, db: Session, notifier: Notifier, orders: OrderService = None):
        self.db = db
        self.notifier = notifier
        self.orders = orders or OrderService(db, notifier=notifier)

    def handle_callback(self, order_code: Optional[str], result_code: Optional[str], message: Optional[str] = None) -> Ack:
        try:
            return self._handle(order_code, result_code, message)
        except Exception:
            self.db.rollback()
            log.exception("payment callback for order %s failed", order_code)
            return Ack(outcome="error")

    def _handle(self, order_code, result_code, message) -> Ack:
        if order_code in (None, ""):
            # gateway verification ping
            return Ack(outcome="ping")

        order = self.orders.find_by_code(str(order_code))
        if order is None:
            log.info("payment callback for unknown order %s", order_code)
            return Ack(outcome="unknown_order")

        if str(result_code) == SUCCESS_CODE:
            log.info("payment succeeded for order %s", order.order_code)
            notify_order_requested(self.notifier, order)
            return Ack(outcome="paid")

        if not self.orders.fail_payment(order, message or f"code {result_code}"):
            self.db.rollback()
            log.info("duplicate payment failure for order %s ignored", order.order_code)
            return Ack(outcome="duplicate")
        self.db.commit()
        log.info("payment failed for order %s, stock restored", order.order_code)
        return Ack(outcome="payment_failed")
