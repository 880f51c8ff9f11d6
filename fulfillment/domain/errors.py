# fulfillment/domain/errors.py
"""
Typed domain errors. Every error carries a stable machine-readable ``code``
and the HTTP status the API layer answers with.
"""


class DomainError(Exception):
    status_code = 400
    default_code = "validation"
    retryable = False

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class ValidationError(DomainError):
    status_code = 400
    default_code = "validation"


class NotFoundError(DomainError):
    status_code = 404
    default_code = "not_found"


class ConflictError(DomainError):
    status_code = 409
    default_code = "conflict"


class InsufficientStockError(DomainError):
    status_code = 409
    default_code = "insufficient_stock"
    retryable = True


class StockItemMissingError(DomainError):
    status_code = 409
    default_code = "stock_item_missing"


class OutOfStockError(DomainError):
    status_code = 400
    default_code = "out_of_stock"


class CouponError(DomainError):
    status_code = 400
    default_code = "coupon_invalid"


class ProductInactiveError(DomainError):
    status_code = 400
    default_code = "product_inactive"


class EmptyCartError(DomainError):
    status_code = 400
    default_code = "empty_cart"


class InvalidTransitionError(DomainError):
    status_code = 409
    default_code = "invalid_transition"


class GatewayError(DomainError):
    status_code = 502
    default_code = "payment_gateway_error"
    retryable = True


class UndoError(DomainError):
    status_code = 400
    default_code = "undo_not_supported"
