# fulfillment/repos/coupon_repo.py
from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from fulfillment.data.models.coupon import CouponModel
from fulfillment.utils.clock import utcnow


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_code(self, code: str) -> CouponModel | None:
        return self.db.execute(
            select(CouponModel).where(CouponModel.code == code)
        ).scalar_one_or_none()

    def get(self, coupon_id: str) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id)

    def increment_redemption(self, coupon_id: str) -> int:
        # limit check and increment in one statement
        result = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(
                    CouponModel.max_redemptions.is_(None),
                    CouponModel.redemption_count < CouponModel.max_redemptions,
                ),
            )
            .values(
                redemption_count=CouponModel.redemption_count + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
