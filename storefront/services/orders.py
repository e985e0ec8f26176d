"""Order aggregate operations.

``total_amount`` is always derived: every path that touches an order's items
or voucher usage calls ``recompute_total`` before committing. Status changes
that move stock or voucher counters go through a conditional UPDATE on the
order row, so a retried or duplicated request finds nothing left to claim.
"""
import math
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, literal, select, update
from sqlalchemy.orm import Session

from storefront.core.auth import Principal
from storefront.core.errors import Forbidden, OrderItemNotFound, OrderNotFound, ValidationError
from storefront.core.logging import get_logger
from storefront.db.models import Order, OrderItem, OrderStatus, PaymentMethod, Voucher, VoucherUsage, utcnow
from storefront.services.inventory import InventoryLedger
from storefront.services.notifications import Notifier, notify_status_change
from storefront.services.pricing import PricingEngine

log = get_logger("orders")

ALLOWED_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    OrderStatus.PENDING: (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    OrderStatus.CONFIRMED: (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    OrderStatus.PROCESSING: (OrderStatus.SHIPPING, OrderStatus.CANCELLED),
    OrderStatus.SHIPPING: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
    OrderStatus.PAYMENT_FAILED: (),
}

# goods still in the warehouse: cancelling or deleting gives the stock back
STOCK_HOLDING = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING)

# statuses whose stock has already been returned
STOCK_RELEASED = (OrderStatus.PAYMENT_FAILED, OrderStatus.CANCELLED)

EDITABLE_FIELDS = (
    "notes", "shipping_address", "customer_name", "customer_phone",
    "customer_email", "payment_method", "voucher_usage_id",
)

NOTES_MAX_LEN = 1000


def _append_note_expr(note: str):
    combined = func.coalesce(Order.notes + literal("\n"), literal("")) + literal(note)
    return func.substr(combined, 1, NOTES_MAX_LEN)


class OrderService:
    def __init__(self, db: Session, notifier: Optional[Notifier] = None,
                 ledger: InventoryLedger = None, pricing: PricingEngine = None):
        self.db = db
        self.notifier = notifier
        self.ledger = ledger or InventoryLedger(db)
        self.pricing = pricing or PricingEngine(db)

    # --- reads ---

    def get(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if not order:
            raise OrderNotFound(order_id)
        return order

    def get_for(self, order_id: int, principal: Principal) -> Order:
        order = self.get(order_id)
        if not principal.is_admin and order.user_id != principal.id:
            raise Forbidden("You may only view your own orders")
        return order

    def find_by_code(self, order_code: str) -> Optional[Order]:
        return self.db.execute(select(Order).where(Order.order_code == str(order_code))).scalars().first()

    def list_for(self, principal: Principal, page: int = 1, limit: int = 10) -> Tuple[List[Order], int]:
        stmt = select(Order)
        count = select(func.count(Order.id))
        if not principal.is_admin:
            stmt = stmt.where(Order.user_id == principal.id)
            count = count.where(Order.user_id == principal.id)
        total = self.db.execute(count).scalar_one()
        rows = self.db.execute(
            stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit)
        ).scalars().all()
        return list(rows), total

    # --- totals ---

    def recompute_total(self, order: Order) -> int:
        self.db.flush()
        self.db.refresh(order, ["items"])
        order.total_amount = self.pricing.net_total(order)
        return order.total_amount

    # --- status ---

    def _claim_status(self, order: Order, new_status: OrderStatus, allowed_from, note: Optional[str] = None) -> bool:
        values = {"status": new_status}
        if note:
            values["notes"] = _append_note_expr(note)
        result = self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(list(allowed_from)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(order)
        return result.rowcount == 1

    def _release_items(self, order: Order) -> None:
        # read quantities from the rows, not from a possibly stale collection
        items = self.db.execute(
            select(OrderItem).where(OrderItem.order_id == order.id).execution_options(populate_existing=True)
        ).scalars().all()
        for it in items:
            self.ledger.release(it.product_id, it.quantity)

    def _count_voucher_usage(self, order: Order) -> None:
        if order.voucher_usage_id is None:
            return
        usage = self.db.get(VoucherUsage, order.voucher_usage_id)
        if usage is None or not usage.voucher_ids:
            return
        self.db.execute(
            update(Voucher)
            .where(
                Voucher.id.in_(list(usage.voucher_ids)),
                (Voucher.usage_limit.is_(None)) | (Voucher.used_count < Voucher.usage_limit),
            )
            .values(used_count=Voucher.used_count + 1)
            .execution_options(synchronize_session=False)
        )

    def change_status(self, order: Order, new_status: OrderStatus) -> bool:
        """Move an order along the admin workflow. Returns False when nothing changed."""
        prev = order.status
        if new_status == prev:
            return False
        if new_status not in ALLOWED_TRANSITIONS[prev]:
            raise ValidationError(f"Cannot change order status from {prev.value} to {new_status.value}", field="status")

        if not self._claim_status(order, new_status, [prev]):
            if order.status == new_status:
                # a concurrent retry got there first
                return False
            raise ValidationError(f"Order {order.order_code} changed status concurrently, retry", field="status")

        if new_status == OrderStatus.CONFIRMED:
            self._count_voucher_usage(order)
        elif new_status == OrderStatus.CANCELLED and prev in STOCK_HOLDING:
            self._release_items(order)
        log.info("order %s: %s -> %s", order.order_code, prev.value, new_status.value)
        return True

    def fail_payment(self, order: Order, message: str) -> bool:
        """Mark an order payment_failed and return its stock, at most once."""
        note = f"Payment failed: {message}" if message else "Payment failed"
        allowed_from = [s for s in OrderStatus if s not in STOCK_RELEASED]
        if not self._claim_status(order, OrderStatus.PAYMENT_FAILED, allowed_from, note=note):
            return False
        self._release_items(order)
        return True

    def cancel_unpaid(self, order: Order, reason: str) -> bool:
        """Compensate a checkout whose payment link could not be created."""
        if not self._claim_status(order, OrderStatus.CANCELLED, [OrderStatus.PENDING], note=reason):
            log.warning(
                "payment link failed for order %s but it is already %s; its stock stays reserved",
                order.order_code, order.status.value,
            )
            return False
        self._release_items(order)
        return True

    # --- admin update / delete ---

    def update(self, order_id: int, changes: dict) -> Order:
        order = self.get(order_id)
        changes = dict(changes)
        changes.pop("total_amount", None)
        new_status = changes.pop("status", None)

        # status first: the conditional claim reloads the row
        status_changed = False
        if new_status is not None:
            status_changed = self.change_status(order, OrderStatus(new_status))

        for key in EDITABLE_FIELDS:
            if key not in changes:
                continue
            value = changes[key]
            if key == "payment_method" and value is not None:
                value = PaymentMethod(value)
            if key in ("shipping_address", "customer_name", "customer_phone", "payment_method") and not value:
                raise ValidationError(f"{key} may not be empty", field=key)
            if key == "voucher_usage_id" and value is not None and self.db.get(VoucherUsage, value) is None:
                raise ValidationError(f"Voucher usage {value} does not exist", field=key)
            setattr(order, key, value)

        self.recompute_total(order)
        self.db.commit()
        self.db.refresh(order)

        if status_changed and self.notifier is not None:
            notify_status_change(self.notifier, order)
        return order

    def delete(self, order_id: int) -> None:
        order = self.get(order_id)
        prev = order.status
        lines = [(it.product_id, it.quantity) for it in self.db.execute(
            select(OrderItem).where(OrderItem.order_id == order.id).execution_options(populate_existing=True)
        ).scalars()]
        self.db.execute(delete(OrderItem).where(OrderItem.order_id == order.id))
        result = self.db.execute(
            delete(Order).where(Order.id == order.id, Order.status == prev).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise ValidationError(f"Order {order.order_code} changed concurrently, retry")
        if prev in STOCK_HOLDING:
            for product_id, quantity in lines:
                self.ledger.release(product_id, quantity)
        self.db.commit()
        log.info("order %s deleted (stock released: %s)", order_id, prev in STOCK_HOLDING)

    # --- order items ---

    def _editable_item(self, item_id: int) -> OrderItem:
        """Load an item and lock its order in ``pending`` before any stock moves."""
        item = self.db.get(OrderItem, item_id)
        if not item:
            raise OrderItemNotFound(item_id)
        order_id = item.order_id
        if order_id is None:
            return item
        # touching the row holds it against a concurrent payment failure or cancel
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            order = self.get(order_id)
            raise ValidationError(
                f"Items of order {order.order_code} can only change while it is pending", field="status"
            )
        self.db.refresh(item)
        return item

    def update_item_quantity(self, item_id: int, quantity: int) -> OrderItem:
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")
        item = self._editable_item(item_id)
        delta = quantity - item.quantity
        if delta > 0:
            self.ledger.reserve(item.product_id, delta)
        elif delta < 0:
            self.ledger.release(item.product_id, -delta)
        item.quantity = quantity
        item.total_price = item.unit_price * quantity
        if item.order is not None:
            self.recompute_total(item.order)
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item_id: int) -> None:
        item = self._editable_item(item_id)
        order = item.order
        self.ledger.release(item.product_id, item.quantity)
        self.db.delete(item)
        if order is not None:
            self.recompute_total(order)
        self.db.commit()


def paginate(total: int, page: int, limit: int) -> dict:
    return {
        "pageIndex": page,
        "pageSize": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalResults": total,
    }
