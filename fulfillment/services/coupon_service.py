# fulfillment/services/coupon_service.py
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from fulfillment.data.models.coupon import CouponModel
from fulfillment.domain.enums import CouponType
from fulfillment.domain.errors import CouponError
from fulfillment.domain.pricing import to_money
from fulfillment.repos.coupon_repo import CouponRepo
from fulfillment.utils.clock import as_utc, utcnow
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def normalize_coupon_code(code: str | None) -> str | None:
    if not code:
        return None
    normalized = code.strip().upper()
    return normalized or None


@dataclass(frozen=True)
class CouponResolution:
    coupon: CouponModel
    discount_total: Decimal


class CouponResolver:
    """
    Validates a code against a subtotal. Resolving never touches
    redemption_count, only redeem() does, inside the checkout transaction.
    """

    def resolve(self, db: Session, code: str | None, subtotal: Decimal, now: datetime | None = None) -> CouponResolution:
        normalized = normalize_coupon_code(code)
        coupon = CouponRepo(db).get_by_code(normalized) if normalized else None
        if coupon is None:
            raise CouponError("Coupon is invalid", code="coupon_invalid")

        if not coupon.is_active:
            raise CouponError("Coupon is not available", code="coupon_inactive")

        now = now or utcnow()
        if coupon.starts_at is not None and as_utc(coupon.starts_at) > now:
            raise CouponError("Coupon is not active yet", code="coupon_not_started")

        if coupon.ends_at is not None and as_utc(coupon.ends_at) < now:
            raise CouponError("Coupon has expired", code="coupon_expired")

        if coupon.min_subtotal is not None and subtotal < coupon.min_subtotal:
            raise CouponError("Subtotal is below the coupon minimum", code="coupon_min_subtotal")

        if coupon.max_redemptions is not None and coupon.redemption_count >= coupon.max_redemptions:
            raise CouponError("Coupon reached its redemption limit", code="coupon_limit_reached")

        discount = self._raw_discount(coupon, subtotal)
        if discount is None or not discount.is_finite():
            raise CouponError("Coupon value is invalid", code="coupon_invalid_value")

        # judged after rounding: a discount under half a cent is no discount
        discount_total = to_money(min(discount, subtotal))
        if discount_total <= 0:
            raise CouponError("Coupon value is invalid", code="coupon_invalid_value")

        logger.info(f"Coupon {coupon.code} resolved, discount {discount_total} on subtotal {subtotal}")
        return CouponResolution(coupon=coupon, discount_total=discount_total)

    def _raw_discount(self, coupon: CouponModel, subtotal: Decimal) -> Decimal | None:
        try:
            value = Decimal(str(coupon.value))
            if coupon.type == CouponType.PERCENT.value:
                return subtotal * value / Decimal(100)
            if coupon.type == CouponType.FIXED.value:
                return value
        except InvalidOperation:
            return None
        return None

    def redeem(self, db: Session, coupon: CouponModel) -> None:
        # conditional UPDATE: a concurrent redemption of the last slot leaves rowcount at 0
        if CouponRepo(db).increment_redemption(coupon.id) == 0:
            raise CouponError(
                "Coupon reached its redemption limit",
                code="coupon_limit_reached",
                status_code=409,
            )
        db.expire(coupon, ["redemption_count", "updated_at"])
        logger.info(f"Coupon {coupon.code} redeemed")
