from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, BigInteger, JSON, CheckConstraint
from sqlalchemy import Enum as SAEnum
from datetime import datetime, timezone
from enum import Enum
from storefront.db.session import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentMethod(str, Enum):
    BANK = "bank"
    COD = "cod"


class VoucherType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class NotificationType(str, Enum):
    ORDER_REQUESTED = "order_requested"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_PROCESSING = "order_processing"
    ORDER_SHIPPING = "order_shipping"
    ORDER_DELIVERED = "order_delivered"


def _enum(cls):
    # store the lowercase values, not the member names
    return SAEnum(cls, values_callable=lambda e: [m.value for m in e], native_enum=False, length=32)


def utcnow() -> datetime:
    # naive UTC, matching the DateTime() columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, onupdate=utcnow)


class Product(TimestampMixin, Base):
    __tablename__ = 'products'
    __table_args__ = (CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default='')
    category_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # written only through InventoryLedger.reserve/release
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Voucher(TimestampMixin, Base):
    __tablename__ = 'vouchers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[VoucherType] = mapped_column(_enum(VoucherType), nullable=False)
    value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    can_stack: Mapped[bool] = mapped_column(Boolean, default=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class VoucherUsage(TimestampMixin, Base):
    __tablename__ = 'voucher_usages'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # applied voucher ids, in the order they were accepted
    voucher_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Order(TimestampMixin, Base):
    __tablename__ = 'orders'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    order_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod), nullable=False)
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(15), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    voucher_usage_id: Mapped[int | None] = mapped_column(ForeignKey('voucher_usages.id'), nullable=True)

    items = relationship('OrderItem', back_populates='order', order_by='OrderItem.id', cascade='all, delete-orphan')
    voucher_usage = relationship('VoucherUsage')


class OrderItem(TimestampMixin, Base):
    __tablename__ = 'order_items'
    __table_args__ = (CheckConstraint('quantity >= 1', name='ck_order_items_quantity_positive'),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int | None] = mapped_column(ForeignKey('orders.id', ondelete='CASCADE'), nullable=True, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey('products.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_price: Mapped[int] = mapped_column(BigInteger, nullable=False)

    order = relationship('Order', back_populates='items')


class Notification(TimestampMixin, Base):
    __tablename__ = 'notifications'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # a user id, or a channel such as "role:admin"
    recipient: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(_enum(NotificationType), nullable=False)
    content: Mapped[str] = mapped_column(String(1000), nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
