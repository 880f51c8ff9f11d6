# fulfillment/services/checkout_service.py
from sqlalchemy.orm import Session

from fulfillment.data.database import transactional
from fulfillment.data.models.order import OrderItemModel, OrderModel
from fulfillment.data.models.payment import PaymentModel
from fulfillment.domain.enums import OrderStatus, PaymentStatus
from fulfillment.domain.errors import EmptyCartError
from fulfillment.domain.pricing import ZERO, to_money
from fulfillment.repos.cart_repo import CartRepo
from fulfillment.repos.order_repo import OrderRepo
from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.cart_service import cart_item_view, cart_subtotal
from fulfillment.services.coupon_service import CouponResolver, normalize_coupon_code
from fulfillment.services.payment_gateway import normalize_provider
from fulfillment.utils.logging import get_logger
from fulfillment.utils.settings import DEFAULT_CURRENCY

logger = get_logger(__name__)


class CheckoutOrchestrator:
    """
    Turns the user's cart into an immutable order.

    Coupon redemption, order and payment creation and emptying the cart all
    happen in one serializable transaction: either all of it is visible or
    none of it is. Stock is not touched here, the lifecycle controller
    deducts it once the order is paid.
    """

    def __init__(self, coupons: CouponResolver | None = None, audit: AuditLogger | None = None):
        self.coupons = coupons or CouponResolver()
        self.audit = audit or AuditLogger()

    def summary(self, db: Session, user_id: str, coupon_code: str | None = None) -> dict:
        """Read-only preview of what checkout would charge; never redeems."""
        cart = CartRepo(db).get_cart_by_user(user_id)
        if cart is None:
            return {"items": [], "subtotal": ZERO, "discount_total": ZERO, "total": ZERO, "coupon_code": None}

        items = [cart_item_view(item) for item in cart.items]
        subtotal = cart_subtotal(cart.items)
        normalized = normalize_coupon_code(coupon_code)

        if not normalized or subtotal == ZERO:
            return {"items": items, "subtotal": subtotal, "discount_total": ZERO, "total": subtotal, "coupon_code": None}

        resolution = self.coupons.resolve(db, normalized, subtotal)
        return {
            "items": items,
            "subtotal": subtotal,
            "discount_total": resolution.discount_total,
            "total": to_money(max(ZERO, subtotal - resolution.discount_total)),
            "coupon_code": resolution.coupon.code,
        }

    @transactional()
    def checkout(
        self,
        db: Session,
        user_id: str,
        coupon_code: str | None = None,
        payment_provider: str | None = None,
    ) -> OrderModel:
        cart_repo = CartRepo(db)
        cart = cart_repo.get_cart_by_user(user_id)
        if cart is None or not cart.items:
            raise EmptyCartError("Cart is empty")

        subtotal = cart_subtotal(cart.items)

        coupon = None
        discount_total = ZERO
        normalized = normalize_coupon_code(coupon_code)
        if normalized:
            resolution = self.coupons.resolve(db, normalized, subtotal)
            coupon = resolution.coupon
            discount_total = resolution.discount_total
            self.coupons.redeem(db, coupon)

        total = to_money(max(ZERO, subtotal - discount_total))

        order = OrderModel(
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            total=total,
            discount_total=discount_total,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            currency=DEFAULT_CURRENCY,
        )
        for position, cart_item in enumerate(cart.items):
            order.items.append(
                OrderItemModel(
                    position=position,
                    product_id=cart_item.product_id,
                    variant_id=cart_item.variant_id,
                    quantity=cart_item.quantity,
                    pricing=cart_item.pricing,
                    name_snapshot=cart_item.name_snapshot,
                    sku_snapshot=cart_item.sku_snapshot,
                    attributes_snapshot=dict(cart_item.attributes_snapshot or {}),
                )
            )
        order.payment = PaymentModel(
            status=PaymentStatus.PENDING.value,
            amount=total,
            provider=normalize_provider(payment_provider),
        )
        OrderRepo(db).create_order(order)

        cleared = cart_repo.clear_items(cart.id)
        db.expire(cart, ["items"])

        self.audit.record(
            db,
            user_id,
            "checkout",
            "order",
            order.id,
            meta={
                "subtotal": str(subtotal),
                "discount_total": str(discount_total),
                "total": str(total),
                "coupon_code": order.coupon_code,
                "items": cleared,
            },
        )
        logger.info(
            f"Order {order.id} created for user {user_id}: subtotal {subtotal}, "
            f"discount {discount_total}, total {total}"
        )
        return order
