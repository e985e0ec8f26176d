"""Domain exceptions for the storefront service."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when caller input is missing or malformed."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFound(StorefrontError):
    """Raised when a referenced entity does not exist."""

    entity = "Entity"

    def __init__(self, entity_id=None):
        self.entity_id = entity_id
        msg = f"{self.entity} not found"
        if entity_id is not None:
            msg = f"{msg}: {entity_id}"
        super().__init__(msg)


class ProductNotFound(NotFound):
    entity = "Product"


class OrderNotFound(NotFound):
    entity = "Order"


class OrderItemNotFound(NotFound):
    entity = "Order item"


class VoucherNotFound(NotFound):
    entity = "Voucher"


class NotificationNotFound(NotFound):
    entity = "Notification"


class Forbidden(StorefrontError):
    """Raised when an authenticated principal may not perform an action."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class InsufficientStock(StorefrontError):
    """Raised when a reservation asks for more than the product has left."""

    def __init__(self, product_id: int, product_name: str | None = None):
        self.product_id = product_id
        label = product_name or f"product_id {product_id}"
        super().__init__(f"Insufficient stock for {label}")


class ProductUnavailable(StorefrontError):
    """Raised when a reservation targets an inactive product."""

    def __init__(self, product_id: int, product_name: str | None = None):
        self.product_id = product_id
        label = product_name or f"product_id {product_id}"
        super().__init__(f"{label} is not available for purchase")


class DuplicateEntity(StorefrontError):
    """Raised when a unique field (voucher code, ...) is already taken."""

    pass


class ExternalServiceError(StorefrontError):
    """Raised when a downstream service is unreachable or answers with an error."""

    pass


class PaymentGatewayError(ExternalServiceError):
    """Raised when the payment provider cannot create a payment link."""

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)


class IntegrityError(StorefrontError):
    """Raised on unexpected internal inconsistency between stored records."""

    pass
