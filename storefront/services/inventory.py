"""Stock reservation against the products table.

Every stock change is a single conditional UPDATE so concurrent buyers can
never drive ``stock_quantity`` below zero. The ledger does not commit; the
caller decides when a reservation becomes durable.
"""
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.orm import Session

from storefront.core.errors import InsufficientStock, ProductNotFound, ProductUnavailable, ValidationError
from storefront.core.logging import get_logger
from storefront.db.models import Product

log = get_logger("inventory")


@dataclass(frozen=True)
class Reservation:
    product_id: int
    quantity: int
    unit_price: int


def _check_quantity(quantity) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}", field="quantity")


class InventoryLedger:
    def __init__(self, db: Session):
        self.db = db

    def reserve(self, product_id: int, quantity: int) -> Reservation:
        """Take ``quantity`` units of a product, or raise without touching stock."""
        _check_quantity(quantity)
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                Product.is_active.is_(True),
                Product.stock_quantity >= quantity,
            )
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        product = self.db.get(Product, product_id, populate_existing=True)
        if result.rowcount == 1:
            log.debug("reserved %s x product %s", quantity, product_id)
            return Reservation(product_id=product_id, quantity=quantity, unit_price=product.amount)

        # nothing matched: re-read only to name the failure
        if product is None:
            raise ProductNotFound(product_id)
        if not product.is_active:
            raise ProductUnavailable(product_id, product.name)
        log.info("insufficient stock for product %s (wanted %s)", product_id, quantity)
        raise InsufficientStock(product_id, product.name)

    def release(self, product_id: int, quantity: int) -> None:
        """Give ``quantity`` units back to a product."""
        _check_quantity(quantity)
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 0:
            log.warning("release of %s units skipped: product %s no longer exists", quantity, product_id)
            return
        # keep any loaded instance in step with the row
        product = self.db.identity_map.get(self.db.identity_key(Product, product_id))
        if product is not None:
            self.db.expire(product, ["stock_quantity"])

    def release_all(self, reservations) -> None:
        """Compensate a batch of reservations, newest first."""
        for r in reversed(list(reservations)):
            self.release(r.product_id, r.quantity)
