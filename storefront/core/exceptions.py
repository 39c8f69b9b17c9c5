"""
Storefront Exception Hierarchy

Every business failure carries a machine-readable code, a human message and
structured details, and maps to one HTTP status.

Exception Hierarchy:
    StorefrontError
    ├── ValidationError (400)
    │   ├── EmptyCartError
    │   ├── ProductUnavailableError
    │   ├── PaymentVerificationError
    │   └── DuplicateSkuError
    ├── NotFoundError (404)
    ├── StateConflictError (400)
    │   ├── AlreadyCapturedError
    │   ├── InvalidStateError
    │   ├── CannotRejectCapturedPaymentError
    │   └── NotCancellableError
    ├── InventoryError (400)
    │   └── InsufficientStockError
    ├── RateLimitedError (429)
    ├── ExternalPaymentError (502)
    │   ├── PaymentStatusUnknownError (504)
    │   └── PaymentGatewayDisabledError (503)
    └── PersistenceError (500)
"""
from typing import Optional, Dict, Any


class StorefrontError(Exception):
    """
    Base exception for all storefront errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
    """

    status_code: int = 500
    default_code: str = "STOREFRONT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# INPUT ERRORS
# =============================================================================

class ValidationError(StorefrontError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class EmptyCartError(ValidationError):
    default_code = "EMPTY_CART"

    def __init__(self, message: str = "Cart is empty", **kwargs):
        super().__init__(message, **kwargs)


class ProductUnavailableError(ValidationError):
    """Product is missing or not in a sellable state."""
    default_code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: int, product_name: Optional[str] = None, **kwargs):
        label = product_name or f"#{product_id}"
        details = kwargs.pop("details", {})
        details.update({"product_id": product_id})
        super().__init__(f"Product {label} is not available", details=details, **kwargs)


class PaymentVerificationError(ValidationError):
    """The payment reference sent at checkout does not back this order."""
    default_code = "PAYMENT_VERIFICATION_FAILED"


class DuplicateSkuError(ValidationError):
    default_code = "SKU_EXISTS"

    def __init__(self, sku: str, **kwargs):
        super().__init__(f"SKU {sku} already exists", details={"sku": sku}, **kwargs)


class NotFoundError(StorefrontError):
    status_code = 404
    default_code = "NOT_FOUND"


# =============================================================================
# STATE MACHINE ERRORS
# =============================================================================

class StateConflictError(StorefrontError):
    """Requested transition is not legal from the current state."""
    status_code = 400
    default_code = "STATE_CONFLICT"


class AlreadyCapturedError(StateConflictError):
    default_code = "ALREADY_CAPTURED"

    def __init__(self, message: str = "Payment has already been captured for this order", **kwargs):
        super().__init__(message, **kwargs)


class InvalidStateError(StateConflictError):
    default_code = "INVALID_STATE"


class CannotRejectCapturedPaymentError(StateConflictError):
    default_code = "PAYMENT_ALREADY_CAPTURED"

    def __init__(
        self,
        message: str = "Cannot reject an order with captured payment. Please process a refund instead.",
        **kwargs
    ):
        super().__init__(message, **kwargs)


class NotCancellableError(StateConflictError):
    default_code = "NOT_CANCELLABLE"


# =============================================================================
# INVENTORY ERRORS
# =============================================================================

class InventoryError(StorefrontError):
    status_code = 400
    default_code = "INVENTORY_ERROR"


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds available stock."""
    default_code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: int,
        product_name: str,
        requested: int,
        available: Optional[int] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "product_name": product_name,
            "requested": requested,
            "available": available,
        })
        if available is None:
            message = f"Insufficient stock for {product_name}"
        else:
            message = f"Insufficient stock for {product_name}. Available: {available}"
        super().__init__(message, details=details, **kwargs)


# =============================================================================
# PAYMENT ERRORS
# =============================================================================

class ExternalPaymentError(StorefrontError):
    """The payment processor rejected or could not complete the call."""
    status_code = 502
    default_code = "PAYMENT_PROCESSOR_ERROR"


class PaymentStatusUnknownError(ExternalPaymentError):
    """The processor did not answer in time; the outcome is unknown."""
    status_code = 504
    default_code = "PAYMENT_STATUS_UNKNOWN"


class PaymentGatewayDisabledError(ExternalPaymentError):
    status_code = 503
    default_code = "PAYMENTS_DISABLED"

    def __init__(self, message: str = "Payment processing is not configured", **kwargs):
        super().__init__(message, **kwargs)


# =============================================================================
# TRAFFIC ERRORS
# =============================================================================

class RateLimitedError(StorefrontError):
    status_code = 429
    default_code = "RATE_LIMITED"

    def __init__(self, retry_after: int, **kwargs):
        super().__init__(
            f"Too many requests. Please try again in {retry_after} seconds.",
            details={"retry_after": retry_after},
            **kwargs,
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================

class PersistenceError(StorefrontError):
    status_code = 500
    default_code = "PERSISTENCE_ERROR"
