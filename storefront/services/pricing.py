"""Order pricing: gross item total, voucher discount, net total.

Vouchers are considered in the order the caller listed them. The first valid
one is always taken; every later one must be stackable, and at most one
percentage voucher applies per order. Vouchers that are inactive, outside
their validity window or used up are skipped without an error.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from storefront.core.errors import IntegrityError
from storefront.db.models import Order, OrderItem, Voucher, VoucherType, VoucherUsage, utcnow


@dataclass(frozen=True)
class Pricing:
    gross_total: int
    discount: int
    net_total: int
    applied_voucher_ids: List[int] = field(default_factory=list)


def is_voucher_usable(voucher: Voucher, now: datetime) -> bool:
    if not voucher.is_active:
        return False
    if voucher.start_date is not None and now < voucher.start_date:
        return False
    if voucher.end_date is not None and now > voucher.end_date:
        return False
    if voucher.usage_limit is not None and (voucher.used_count or 0) >= voucher.usage_limit:
        return False
    return True


def voucher_contribution(voucher: Voucher, gross_total: int) -> int:
    if voucher.type == VoucherType.PERCENTAGE:
        return (gross_total * voucher.value) // 100
    return voucher.value


def compute_pricing(items: Iterable[OrderItem], vouchers: Sequence[Voucher], now: datetime) -> Pricing:
    """Price already-loaded items against already-loaded vouchers (in caller order)."""
    gross_total = sum(int(it.total_price or 0) for it in items)

    applied: List[int] = []
    discount = 0
    has_percentage = False
    for v in vouchers:
        if not is_voucher_usable(v, now):
            continue
        is_percentage = v.type == VoucherType.PERCENTAGE
        if applied:
            if not v.can_stack:
                continue
            if is_percentage and has_percentage:
                continue
        discount += voucher_contribution(v, gross_total)
        applied.append(v.id)
        has_percentage = has_percentage or is_percentage

    discount = min(max(discount, 0), gross_total)
    return Pricing(
        gross_total=gross_total,
        discount=discount,
        net_total=gross_total - discount,
        applied_voucher_ids=applied,
    )


class PricingEngine:
    def __init__(self, db: Session):
        self.db = db

    def _load_items(self, order_item_ids: Sequence[int]) -> List[OrderItem]:
        if not order_item_ids:
            return []
        rows = self.db.execute(select(OrderItem).where(OrderItem.id.in_(list(order_item_ids)))).scalars().all()
        # missing ids simply contribute nothing
        return list(rows)

    def _load_vouchers(self, voucher_ids: Sequence[int]) -> List[Voucher]:
        if not voucher_ids:
            return []
        rows = self.db.execute(select(Voucher).where(Voucher.id.in_(list(voucher_ids)))).scalars().all()
        by_id = {v.id: v for v in rows}
        # keep caller order, drop repeats of the same voucher
        ordered = dict.fromkeys(vid for vid in voucher_ids if vid in by_id)
        return [by_id[vid] for vid in ordered]

    def price(self, order_item_ids: Sequence[int], voucher_ids: Sequence[int], now: Optional[datetime] = None) -> Pricing:
        now = now or utcnow()
        return compute_pricing(self._load_items(order_item_ids), self._load_vouchers(voucher_ids), now)

    def create_usage(self, pricing: Pricing) -> VoucherUsage:
        usage = VoucherUsage(voucher_ids=list(pricing.applied_voucher_ids), discount_amount=pricing.discount)
        self.db.add(usage)
        self.db.flush()
        return usage

    def net_total(self, order: Order) -> int:
        """Gross of the order's current items minus its voucher usage discount, floored at 0."""
        gross_total = sum(int(it.total_price or 0) for it in order.items)
        discount = 0
        if order.voucher_usage_id is not None:
            usage = self.db.get(VoucherUsage, order.voucher_usage_id)
            if usage is None:
                raise IntegrityError(
                    f"Order {order.order_code} references missing voucher usage {order.voucher_usage_id}"
                )
            discount = usage.discount_amount or 0
        return max(gross_total - discount, 0)
