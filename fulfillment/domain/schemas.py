# fulfillment/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from fulfillment.domain.enums import GatewayOutcome, OrderStatus, PaymentStatus


class CartItemIn(BaseModel):
    """Schema for adding a product to the cart."""

    product_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(..., gt=0, description="Must be > 0")


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0, description="Must be > 0")


class CartItemOut(BaseModel):
    id: str
    product_id: str
    variant_id: str | None
    quantity: int
    price_snapshot: Decimal
    name_snapshot: str
    sku_snapshot: str
    attributes_snapshot: Dict[str, Any]
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CartOut(BaseModel):
    cart_id: str
    user_id: str
    items: List[CartItemOut]
    subtotal: Decimal


class CheckoutIn(BaseModel):
    coupon_code: str | None = Field(None, max_length=50)
    payment_provider: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=20)


class CheckoutSummaryOut(BaseModel):
    items: List[CartItemOut]
    subtotal: Decimal
    discount_total: Decimal
    total: Decimal
    coupon_code: str | None


class OrderItemOut(BaseModel):
    id: str
    product_id: str | None
    variant_id: str | None
    quantity: int
    price_snapshot: Decimal
    name_snapshot: str
    sku_snapshot: str
    attributes_snapshot: Dict[str, Any]

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: str
    order_id: str
    status: PaymentStatus
    amount: Decimal
    provider: str | None
    external_ref: str | None
    checkout_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema for an order (response)."""

    id: str
    user_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    total: Decimal
    discount_total: Decimal
    coupon_code: str | None
    currency: str
    created_at: datetime
    items: List[OrderItemOut]
    payment: PaymentOut | None = None

    model_config = ConfigDict(from_attributes=True)


class CreatePaymentIn(BaseModel):
    provider: str | None = Field(None, max_length=100)
    phone: str | None = Field(None, max_length=20)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class StockAdjustIn(BaseModel):
    delta: int
    reason: str = Field(..., min_length=1, max_length=120)


class StockItemOut(BaseModel):
    id: str
    variant_id: str
    on_hand: int

    model_config = ConfigDict(from_attributes=True)


class PaymentEventIn(BaseModel):
    """Gateway confirmation, already normalized by the provider adapter."""

    event_id: str = Field(..., min_length=1)
    outcome: GatewayOutcome
    order_id: str | None = None
    payment_id: str | None = None
    external_ref: str | None = None


# Undo descriptors stored with audit entries. Each variant carries exactly the
# state needed to apply the inverse operation.


class OrderStatusUndo(BaseModel):
    kind: Literal["order_status"] = "order_status"
    order_id: str
    status: OrderStatus
    previous_status: OrderStatus
    previous_payment_status: PaymentStatus


class PaymentStatusUndo(BaseModel):
    kind: Literal["payment_status"] = "payment_status"
    order_id: str
    payment_status: PaymentStatus
    previous_payment_status: PaymentStatus


class StockAdjustmentUndo(BaseModel):
    kind: Literal["stock_adjustment"] = "stock_adjustment"
    variant_id: str
    delta: int


UndoDescriptor = Annotated[
    Union[OrderStatusUndo, PaymentStatusUndo, StockAdjustmentUndo],
    Field(discriminator="kind"),
]

undo_adapter = TypeAdapter(UndoDescriptor)


class AuditLogOut(BaseModel):
    id: str
    actor_id: str | None
    action: str
    entity: str
    entity_id: str | None
    meta: Dict[str, Any]
    undo: Dict[str, Any] | None
    undone_at: datetime | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
