#import all models so SQLAlchemy registers them in Base.metadata

from fulfillment.data.models.product import ProductModel, ProductVariantModel
from fulfillment.data.models.stock import StockItemModel, StockMovementModel
from fulfillment.data.models.cart import CartModel
from fulfillment.data.models.cart_item import CartItemModel
from fulfillment.data.models.coupon import CouponModel
from fulfillment.data.models.order import OrderModel, OrderItemModel
from fulfillment.data.models.payment import PaymentModel
from fulfillment.data.models.idempotency import IdempotencyRecordModel
from fulfillment.data.models.audit_log import AuditLogModel

__all__ = [
    "ProductModel",
    "ProductVariantModel",
    "StockItemModel",
    "StockMovementModel",
    "CartModel",
    "CartItemModel",
    "CouponModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "IdempotencyRecordModel",
    "AuditLogModel",
]
