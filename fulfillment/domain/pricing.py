# fulfillment/domain/pricing.py
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Pricing:
    """
    Unit price and cost of a variant, captured together wherever a variant is
    snapshotted (cart item, order item).
    """

    unit_price: Decimal
    cost_price: Decimal | None = None

    def line_total(self, quantity: int) -> Decimal:
        return to_money(self.unit_price * quantity)

