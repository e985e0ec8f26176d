"""Checkout: reserve stock, price, persist the order, open a payment link.

Stock lives on each product row and every reservation is committed on its
own, so a failed checkout is undone by compensation (releasing what this
request reserved) rather than by a database rollback. A checkout that fails
never leaves stock taken without a payable order.
"""
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from storefront.core.auth import Principal
from storefront.core.config import settings
from storefront.core.errors import PaymentGatewayError, ValidationError
from storefront.core.logging import get_logger
from storefront.db.models import Order, OrderItem, OrderStatus, PaymentMethod, utcnow
from storefront.services.inventory import InventoryLedger, Reservation
from storefront.services.orders import OrderService
from storefront.services.payos import PaymentGateway, PaymentLinkRequest
from storefront.services.pricing import PricingEngine

log = get_logger("checkout")


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class ShippingInfo:
    shipping_address: str
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class CheckoutResult:
    order: Order
    checkout_url: str
    applied_voucher_ids: List[int] = field(default_factory=list)


def generate_order_code() -> str:
    # PayOS wants a numeric order code below 2**53
    return f"{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


class CheckoutOrchestrator:
    def __init__(self, db: Session, gateway: PaymentGateway, orders: OrderService = None,
                 ledger: InventoryLedger = None, pricing: PricingEngine = None):
        self.db = db
        self.gateway = gateway
        self.ledger = ledger or InventoryLedger(db)
        self.pricing = pricing or PricingEngine(db)
        self.orders = orders or OrderService(db, ledger=self.ledger, pricing=self.pricing)

    def _validate(self, items: Sequence[CheckoutLine], payment_method, shipping: ShippingInfo) -> PaymentMethod:
        if not items:
            raise ValidationError("Order must contain at least one item", field="items")
        for line in items:
            if not isinstance(line.quantity, int) or line.quantity < 1:
                raise ValidationError(f"Invalid quantity for product_id {line.product_id}", field="quantity")
        if not payment_method:
            raise ValidationError("Payment method is required", field="payment_method")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}", field="payment_method")
        for name in ("shipping_address", "customer_name", "customer_phone"):
            if not (getattr(shipping, name) or "").strip():
                raise ValidationError(f"{name} is required", field=name)
        return method

    def _compensate(self, reservations: List[Reservation]) -> None:
        if not reservations:
            return
        try:
            self.ledger.release_all(reservations)
            self.db.commit()
            log.info("released %d reservation(s) after failed checkout", len(reservations))
        except Exception:
            self.db.rollback()
            log.critical("failed to release reservations %s", reservations, exc_info=True)
            raise

    def _reserve_all(self, items: Sequence[CheckoutLine]) -> List[Reservation]:
        reservations: List[Reservation] = []
        try:
            for line in items:
                reservations.append(self.ledger.reserve(line.product_id, line.quantity))
                self.db.commit()
        except Exception:
            self.db.rollback()
            self._compensate(reservations)
            raise
        return reservations

    def _persist_order(self, reservations, method, shipping, voucher_ids, principal, now) -> Order:
        order = Order(
            user_id=principal.id if principal else None,
            order_code=generate_order_code(),
            status=OrderStatus.PENDING,
            payment_method=method,
            shipping_address=shipping.shipping_address,
            customer_name=shipping.customer_name,
            customer_phone=shipping.customer_phone,
            customer_email=shipping.customer_email,
            notes=shipping.notes,
            total_amount=0,
        )
        order.items = [
            OrderItem(
                product_id=r.product_id,
                quantity=r.quantity,
                unit_price=r.unit_price,
                total_price=r.unit_price * r.quantity,
            )
            for r in reservations
        ]
        self.db.add(order)
        self.db.flush()

        pricing = self.pricing.price([it.id for it in order.items], list(voucher_ids or []), now)
        usage = self.pricing.create_usage(pricing)
        order.voucher_usage_id = usage.id
        self.orders.recompute_total(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def checkout(self, items: Sequence[CheckoutLine], payment_method, shipping: ShippingInfo,
                 voucher_ids: Sequence[int] = (), principal: Optional[Principal] = None,
                 now: Optional[datetime] = None) -> CheckoutResult:
        method = self._validate(items, payment_method, shipping)
        now = now or utcnow()

        reservations = self._reserve_all(items)

        try:
            order = self._persist_order(reservations, method, shipping, voucher_ids, principal, now)
        except Exception:
            self.db.rollback()
            self._compensate(reservations)
            raise

        link = PaymentLinkRequest(
            order_code=order.order_code,
            amount=order.total_amount,
            description=f"Payment {order.order_code}",
            cancel_url=f"{settings.CLIENT_URL}/order-history",
            return_url=f"{settings.CLIENT_URL}/order-history",
        )
        try:
            checkout_url = self.gateway.create_payment_link(link)
        except Exception as e:
            self.db.rollback()
            log.warning("payment link failed for order %s, cancelling it", order.order_code)
            self.orders.cancel_unpaid(order, "Cancelled: payment link could not be created")
            self.db.commit()
            if isinstance(e, PaymentGatewayError):
                raise
            raise PaymentGatewayError("Payment gateway error") from e

        usage = order.voucher_usage
        log.info("order %s created: total=%s items=%d", order.order_code, order.total_amount, len(order.items))
        return CheckoutResult(
            order=order,
            checkout_url=checkout_url,
            applied_voucher_ids=list(usage.voucher_ids) if usage else [],
        )
