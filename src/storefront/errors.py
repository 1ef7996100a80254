"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when input is missing or malformed."""

    def __init__(self, message: str, fields: list[str] | None = None):
        self.fields = fields or []
        super().__init__(message)

    @classmethod
    def missing(cls, fields: list[str]) -> "ValidationError":
        return cls(f"Missing required fields: {', '.join(fields)}", fields)


class NotFoundError(StorefrontError):
    """Raised when a referenced entity doesn't exist."""

    pass


class ProductNotFoundError(NotFoundError):
    """Raised when a product ID doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    """Raised when an order ID doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class ConflictError(StorefrontError):
    """Raised when a write conflicts with the current state."""

    pass


class DuplicateKeyError(ConflictError):
    """Raised when inserting a row whose key already exists."""

    def __init__(self, table: str, key: str):
        self.table = table
        self.key = key
        super().__init__(f"Duplicate key in {table}: {key}")


class PaymentAlreadySubmittedError(ConflictError):
    """Raised when payment details were already submitted for an order."""

    def __init__(self, order_id: str, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Payment details already submitted for order {order_id} (status: {status})"
        )


class IllegalTransitionError(ConflictError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, kind: str, current: str, requested: str):
        self.kind = kind
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change {kind} from '{current}' to '{requested}'")


class StoreUnavailableError(StorefrontError):
    """Raised when the table store cannot be read or written."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Store unavailable: {reason}")


class StoreTimeoutError(StoreUnavailableError):
    """Raised when a store operation exceeds its timeout.

    The operation may still have been applied on the store side.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"timed out after {timeout:g}s")


class MalformedRecordError(StorefrontError):
    """Raised when a stored row doesn't match its record schema."""

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Malformed {table} record: {reason}")


class AssetUploadError(StorefrontError):
    """Raised when an asset can't be stored."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Failed to upload '{filename}': {reason}")


class AdminAuthError(StorefrontError):
    """Raised when an admin request is not authorized."""

    def __init__(self):
        super().__init__("Admin authorization required")
