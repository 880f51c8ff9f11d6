# fulfillment/services/order_service.py
from typing import Dict, FrozenSet, List

from sqlalchemy.orm import Session

from fulfillment.data.database import transactional
from fulfillment.data.models.order import OrderModel
from fulfillment.domain.enums import GatewayOutcome, OrderStatus, PaymentStatus
from fulfillment.domain.errors import InvalidTransitionError, NotFoundError
from fulfillment.domain.schemas import OrderOut, OrderStatusUndo, PaymentEventIn, PaymentStatusUndo
from fulfillment.repos.order_repo import OrderRepo
from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.payment_gateway import normalize_provider
from fulfillment.services.stock_service import StockLedger
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

DEDUCTING_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.SHIPPED})
DEDUCTING_PAYMENT_STATUSES = frozenset({PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED})

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.CANCELED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.CANCELED}),
    OrderStatus.CANCELED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED, PaymentStatus.FAILED}),
    PaymentStatus.AUTHORIZED: frozenset({PaymentStatus.CAPTURED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED, PaymentStatus.FAILED}),
    PaymentStatus.CAPTURED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

# gateway outcome -> (order status, payment status); None leaves the field alone
GATEWAY_OUTCOMES = {
    GatewayOutcome.SUCCEEDED: (OrderStatus.PAID, PaymentStatus.CAPTURED),
    GatewayOutcome.AUTHORIZED: (None, PaymentStatus.AUTHORIZED),
    GatewayOutcome.FAILED: (None, PaymentStatus.FAILED),
}


def should_deduct(status: OrderStatus | str | None, payment_status: PaymentStatus | str | None) -> bool:
    return status in DEDUCTING_STATUSES or payment_status in DEDUCTING_PAYMENT_STATUSES


def should_restore(
    prev_status: OrderStatus | str | None,
    prev_payment_status: PaymentStatus | str | None,
    next_status: OrderStatus | str | None,
) -> bool:
    return next_status == OrderStatus.CANCELED and should_deduct(prev_status, prev_payment_status)


def can_transition(table: dict, current, target) -> bool:
    return current == target or target in table.get(current, frozenset())


def order_view(order: OrderModel) -> dict:
    return OrderOut.model_validate(order).model_dump()


class OrderLifecycleController:
    """
    Owns every change of an order's status and payment status.

    Each transition is validated against the transition tables, written
    together with the Payment row, and followed in the same transaction by
    the stock side effects the new state calls for.
    """

    def __init__(self, ledger: StockLedger | None = None, audit: AuditLogger | None = None):
        self.audit = audit or AuditLogger()
        self.ledger = ledger or StockLedger(audit=self.audit)

    def get_order(self, db: Session, order_id: str, user_id: str | None = None) -> OrderModel:
        order = OrderRepo(db).get_order(order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise NotFoundError("Order not found")
        return order

    def list_orders(self, db: Session, user_id: str) -> List[OrderModel]:
        return OrderRepo(db).list_orders_for_user(user_id)

    @transactional()
    def transition(
        self,
        db: Session,
        order_id: str,
        status: OrderStatus | None = None,
        payment_status: PaymentStatus | None = None,
        actor_id: str | None = None,
        provider: str | None = None,
        external_ref: str | None = None,
    ) -> OrderModel:
        order = self.get_order(db, order_id)
        prev_status = OrderStatus(order.status)
        prev_payment = PaymentStatus(order.payment_status)
        next_status = OrderStatus(status) if status is not None else prev_status
        next_payment = PaymentStatus(payment_status) if payment_status is not None else prev_payment

        if not can_transition(ORDER_TRANSITIONS, prev_status, next_status):
            raise InvalidTransitionError(f"Order cannot move from {prev_status.value} to {next_status.value}")
        if not can_transition(PAYMENT_TRANSITIONS, prev_payment, next_payment):
            raise InvalidTransitionError(
                f"Payment cannot move from {prev_payment.value} to {next_payment.value}"
            )

        payment = order.payment
        if payment is not None:
            if provider:
                payment.provider = normalize_provider(provider)
            if external_ref:
                payment.external_ref = external_ref

        status_changed = next_status != prev_status
        payment_changed = next_payment != prev_payment
        if not status_changed and not payment_changed:
            db.flush()
            return order

        order.status = next_status.value
        order.payment_status = next_payment.value
        if payment is not None:
            payment.status = next_payment.value
        db.flush()

        if should_deduct(next_status, next_payment):
            self.ledger.ensure_deducted(db, order.id)
        if should_restore(prev_status, prev_payment, next_status):
            self.ledger.ensure_restored(db, order.id)

        if status_changed:
            self.audit.record(
                db,
                actor_id,
                "order_status_update",
                "order",
                order.id,
                meta={"from": prev_status.value, "to": next_status.value},
                undo=OrderStatusUndo(
                    order_id=order.id,
                    status=next_status,
                    previous_status=prev_status,
                    previous_payment_status=prev_payment,
                ),
            )
        if payment_changed:
            self.audit.record(
                db,
                actor_id,
                "order_payment_status_update",
                "order",
                order.id,
                meta={"from": prev_payment.value, "to": next_payment.value},
                undo=PaymentStatusUndo(
                    order_id=order.id,
                    payment_status=next_payment,
                    previous_payment_status=prev_payment,
                ),
            )

        logger.info(
            f"Order {order.id}: ({prev_status.value}, {prev_payment.value}) -> "
            f"({next_status.value}, {next_payment.value})"
        )
        return order

    def update_order_status(self, db: Session, order_id: str, status: OrderStatus, actor_id: str | None = None) -> OrderModel:
        return self.transition(db, order_id, status=status, actor_id=actor_id)

    def update_payment_status(
        self, db: Session, order_id: str, payment_status: PaymentStatus, actor_id: str | None = None
    ) -> OrderModel:
        return self.transition(db, order_id, payment_status=payment_status, actor_id=actor_id)

    @transactional()
    def restore_state(
        self,
        db: Session,
        order_id: str,
        status: OrderStatus,
        payment_status: PaymentStatus,
        actor_id: str | None = None,
    ) -> OrderModel:
        """
        Put an order back into an earlier (status, payment_status) pair.

        Used by undo only: it bypasses the forward-only transition tables, and
        stock follows the restored state, taken again when it deducts and
        handed back when it does not.
        """
        order = self.get_order(db, order_id)
        prev_status = OrderStatus(order.status)
        prev_payment = PaymentStatus(order.payment_status)
        next_status = OrderStatus(status)
        next_payment = PaymentStatus(payment_status)
        if (next_status, next_payment) == (prev_status, prev_payment):
            return order

        order.status = next_status.value
        order.payment_status = next_payment.value
        if order.payment is not None:
            order.payment.status = next_payment.value
        db.flush()

        if should_deduct(next_status, next_payment):
            self.ledger.ensure_deducted(db, order.id)
        else:
            self.ledger.ensure_restored(db, order.id)

        logger.info(
            f"Order {order.id} restored by {actor_id}: ({prev_status.value}, {prev_payment.value}) -> "
            f"({next_status.value}, {next_payment.value})"
        )
        return order

    @transactional()
    def cancel_order(self, db: Session, user_id: str, order_id: str) -> OrderModel:
        """Customer cancel, only while the order is still pending."""
        order = self.get_order(db, order_id, user_id=user_id)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransitionError("Order cannot be canceled", code="invalid_status")
        return self.transition(db, order.id, status=OrderStatus.CANCELED, actor_id=user_id)

    @transactional()
    def apply_gateway_event(self, db: Session, provider: str, event: PaymentEventIn) -> dict:
        """
        Feed a gateway confirmation into the lifecycle. Events that point at
        no known order, or would need an illegal transition, are audited and
        acknowledged without changing anything.
        """
        provider = normalize_provider(provider)
        repo = OrderRepo(db)

        order_id = event.order_id
        if not order_id and event.payment_id:
            payment = repo.get_payment(event.payment_id)
            order_id = payment.order_id if payment else None
        order = repo.get_order(order_id) if order_id else None

        applied = False
        if order is not None:
            target_status, target_payment = GATEWAY_OUTCOMES[GatewayOutcome(event.outcome)]
            current_status = OrderStatus(order.status)
            current_payment = PaymentStatus(order.payment_status)

            if target_status is not None and not can_transition(ORDER_TRANSITIONS, current_status, target_status):
                # e.g. already shipped; the payment still moves
                target_status = None

            if can_transition(PAYMENT_TRANSITIONS, current_payment, target_payment):
                self.transition(
                    db,
                    order.id,
                    status=target_status,
                    payment_status=target_payment,
                    provider=provider,
                    external_ref=event.external_ref,
                )
                applied = True
            else:
                logger.warning(
                    f"Ignoring {event.outcome.value} event {event.event_id} for order {order.id} "
                    f"in payment status {current_payment.value}"
                )
        else:
            logger.warning(f"Ignoring {provider} event {event.event_id}: no matching order")

        self.audit.record(
            db,
            None,
            "payment_webhook",
            "system",
            event.payment_id or order_id,
            meta={
                "provider": provider,
                "event_id": event.event_id,
                "outcome": event.outcome.value,
                "order_id": order_id,
                "applied": applied,
            },
        )
        return {"received": True, "applied": applied, "order_id": order.id if order else None}
