from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Any
from datetime import datetime
from storefront.db.models import OrderStatus, PaymentMethod, VoucherType, NotificationType

class Pagination(BaseModel):
    pageIndex: int
    pageSize: int
    totalPages: int
    totalResults: int

# --- products ---

class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = ''
    amount: int = Field(ge=0)
    category_id: Optional[int] = None
    is_active: bool = True
class ProductCreate(ProductBase):
    stock_quantity: int = Field(default=0, ge=0)
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    amount: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    is_active: Optional[bool] = None
class ProductRead(ProductBase):
    id: int
    stock_quantity: int
    class Config: from_attributes = True

class RestockItem(BaseModel):
    product_id: int
    qty: int = Field(ge=1)
class RestockRequest(BaseModel):
    items: List[RestockItem] = Field(min_length=1)

# --- vouchers ---

class VoucherBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    type: VoucherType
    value: int = Field(ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    can_stack: bool = False
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
class VoucherCreate(VoucherBase):
    code: str = Field(min_length=1, max_length=64)

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()
class VoucherUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[VoucherType] = None
    value: Optional[int] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    can_stack: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v
class VoucherRead(VoucherBase):
    id: int
    code: str
    used_count: int
    class Config: from_attributes = True

# --- orders ---

class CheckoutLineIn(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)

class CheckoutRequest(BaseModel):
    items: List[CheckoutLineIn] = Field(min_length=1)
    payment_method: PaymentMethod
    shipping_address: str = Field(min_length=1)
    customer_name: str = Field(min_length=1, max_length=255)
    customer_phone: str = Field(min_length=1, max_length=15)
    customer_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    voucher_ids: List[int] = []

class OrderItemRead(BaseModel):
    id: int
    order_id: Optional[int] = None
    product_id: int
    quantity: int
    unit_price: int
    total_price: int
    class Config: from_attributes = True

class OrderItemUpdate(BaseModel):
    quantity: int = Field(ge=1)

class OrderRead(BaseModel):
    id: int
    order_code: str
    user_id: Optional[str] = None
    status: OrderStatus
    payment_method: PaymentMethod
    total_amount: int
    shipping_address: str
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    notes: Optional[str] = None
    voucher_usage_id: Optional[int] = None
    items: List[OrderItemRead] = []
    created_at: datetime
    updated_at: datetime
    class Config: from_attributes = True

class OrderUpdate(BaseModel):
    # total_amount is derived server-side; a client value is dropped here
    status: Optional[OrderStatus] = None
    payment_method: Optional[PaymentMethod] = None
    shipping_address: Optional[str] = None
    customer_name: Optional[str] = Field(default=None, max_length=255)
    customer_phone: Optional[str] = Field(default=None, max_length=15)
    customer_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    voucher_usage_id: Optional[int] = None

class CheckoutResponse(BaseModel):
    order: OrderRead
    checkout_url: str
    applied_voucher_ids: List[int] = []

class OrderPage(BaseModel):
    data: List[OrderRead]
    pagination: Pagination

# --- payment webhook ---

class WebhookData(BaseModel):
    orderCode: Optional[Any] = None
    amount: Optional[int] = None
    description: Optional[str] = None
    class Config: extra = 'allow'

class WebhookPayload(BaseModel):
    code: Optional[Any] = None
    desc: Optional[str] = None
    success: Optional[bool] = None
    data: Optional[WebhookData] = None
    signature: Optional[str] = None

# --- notifications ---

class NotificationRead(BaseModel):
    id: int
    recipient: str
    type: NotificationType
    content: str
    is_read: bool
    created_at: datetime
    class Config: from_attributes = True

class NotificationPage(BaseModel):
    data: List[NotificationRead]
    pagination: Pagination
