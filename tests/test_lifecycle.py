# tests/test_lifecycle.py
import pytest

from fulfillment.domain.enums import GatewayOutcome, OrderStatus, PaymentStatus
from fulfillment.domain.errors import InsufficientStockError, InvalidTransitionError, NotFoundError
from fulfillment.domain.schemas import PaymentEventIn
from fulfillment.services.order_service import should_deduct, should_restore


@pytest.mark.parametrize(
    "status, payment_status, expected",
    [
        (OrderStatus.PENDING, PaymentStatus.PENDING, False),
        (OrderStatus.PAID, PaymentStatus.PENDING, True),
        (OrderStatus.SHIPPED, PaymentStatus.FAILED, True),
        (OrderStatus.PENDING, PaymentStatus.AUTHORIZED, True),
        (OrderStatus.PENDING, PaymentStatus.CAPTURED, True),
        (OrderStatus.CANCELED, PaymentStatus.REFUNDED, False),
        ("PAID", "PENDING", True),
    ],
)
def test_should_deduct(status, payment_status, expected):
    assert should_deduct(status, payment_status) is expected


def test_should_restore():
    assert should_restore(OrderStatus.PAID, PaymentStatus.PENDING, OrderStatus.CANCELED)
    assert should_restore(OrderStatus.PENDING, PaymentStatus.AUTHORIZED, OrderStatus.CANCELED)
    assert not should_restore(OrderStatus.PENDING, PaymentStatus.PENDING, OrderStatus.CANCELED)
    assert not should_restore(OrderStatus.PAID, PaymentStatus.CAPTURED, OrderStatus.SHIPPED)


@pytest.fixture
def order_with_stock(make_variant, place_order):
    variant = make_variant(on_hand=5)
    order = place_order("u1", [(variant, 2)])
    return order, variant


def test_paid_deducts_and_shipping_does_not_deduct_again(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock

    lifecycle.update_order_status(db, order.id, OrderStatus.PAID)
    assert ledger.on_hand_for(db, variant.id) == 3

    lifecycle.update_order_status(db, order.id, OrderStatus.SHIPPED)
    assert ledger.on_hand_for(db, variant.id) == 3
    assert order.status == OrderStatus.SHIPPED.value


def test_cancel_after_payment_restores(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock

    lifecycle.update_order_status(db, order.id, OrderStatus.PAID)
    lifecycle.update_order_status(db, order.id, OrderStatus.CANCELED)

    assert ledger.on_hand_for(db, variant.id) == 5
    assert ledger.is_consistent(db, variant.stock_item)


def test_cancel_before_payment_touches_no_stock(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock

    lifecycle.update_order_status(db, order.id, OrderStatus.CANCELED)

    assert ledger.on_hand_for(db, variant.id) == 5


def test_authorized_payment_deducts_and_mirrors_payment_row(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock

    lifecycle.update_payment_status(db, order.id, PaymentStatus.AUTHORIZED)

    assert order.payment_status == PaymentStatus.AUTHORIZED.value
    assert order.payment.status == PaymentStatus.AUTHORIZED.value
    assert ledger.on_hand_for(db, variant.id) == 3


def test_late_payment_on_canceled_order_deducts(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock
    lifecycle.update_order_status(db, order.id, OrderStatus.CANCELED)

    lifecycle.update_payment_status(db, order.id, PaymentStatus.CAPTURED)

    assert order.status == OrderStatus.CANCELED.value
    assert ledger.on_hand_for(db, variant.id) == 3
    assert ledger.is_consistent(db, variant.stock_item)


def test_payment_after_cancel_restored_stock_does_not_take_it_again(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock
    lifecycle.update_order_status(db, order.id, OrderStatus.PAID)
    lifecycle.update_order_status(db, order.id, OrderStatus.CANCELED)

    lifecycle.update_payment_status(db, order.id, PaymentStatus.CAPTURED)

    assert ledger.on_hand_for(db, variant.id) == 5
    assert ledger.is_consistent(db, variant.stock_item)


@pytest.mark.parametrize(
    "first, then",
    [
        ({"status": OrderStatus.CANCELED}, {"status": OrderStatus.PAID}),
        ({"status": OrderStatus.SHIPPED}, {"status": OrderStatus.PENDING}),
        ({"payment_status": PaymentStatus.CAPTURED}, {"payment_status": PaymentStatus.AUTHORIZED}),
        ({"payment_status": PaymentStatus.REFUNDED}, {"payment_status": PaymentStatus.PENDING}),
    ],
)
def test_invalid_transitions(db, lifecycle, order_with_stock, first, then):
    order, _ = order_with_stock
    if first.get("payment_status") == PaymentStatus.REFUNDED:
        lifecycle.transition(db, order.id, payment_status=PaymentStatus.CAPTURED)
    lifecycle.transition(db, order.id, **first)

    with pytest.raises(InvalidTransitionError) as exc:
        lifecycle.transition(db, order.id, **then)
    assert exc.value.code == "invalid_transition"
    assert exc.value.status_code == 409


def test_same_value_update_is_a_noop(db, lifecycle, order_with_stock, audit_entries):
    order, _ = order_with_stock
    before = len(audit_entries)

    lifecycle.update_order_status(db, order.id, OrderStatus.PENDING)

    assert len(audit_entries) == before


def test_insufficient_stock_keeps_order_pending(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock
    ledger.adjust(db, variant.id, -4, "damaged")

    with pytest.raises(InsufficientStockError):
        lifecycle.update_order_status(db, order.id, OrderStatus.PAID)

    db.refresh(order)
    assert order.status == OrderStatus.PENDING.value
    assert ledger.on_hand_for(db, variant.id) == 1


def test_transitions_are_audited_with_undo(db, lifecycle, order_with_stock, audit_entries):
    order, _ = order_with_stock

    lifecycle.transition(
        db, order.id, status=OrderStatus.PAID, payment_status=PaymentStatus.CAPTURED, actor_id="staff-1"
    )

    by_action = {e["action"]: e for e in audit_entries}
    assert by_action["order_status_update"]["undo"] == {
        "kind": "order_status",
        "order_id": order.id,
        "status": "PAID",
        "previous_status": "PENDING",
        "previous_payment_status": "PENDING",
    }
    assert by_action["order_payment_status_update"]["undo"] == {
        "kind": "payment_status",
        "order_id": order.id,
        "payment_status": "CAPTURED",
        "previous_payment_status": "PENDING",
    }
    assert by_action["order_status_update"]["actor_id"] == "staff-1"


def test_customer_cancel(db, lifecycle, order_with_stock):
    order, _ = order_with_stock

    with pytest.raises(NotFoundError):
        lifecycle.cancel_order(db, "someone-else", order.id)

    lifecycle.cancel_order(db, "u1", order.id)
    assert order.status == OrderStatus.CANCELED.value


def test_customer_cannot_cancel_paid_order(db, lifecycle, order_with_stock):
    order, _ = order_with_stock
    lifecycle.update_order_status(db, order.id, OrderStatus.PAID)

    with pytest.raises(InvalidTransitionError) as exc:
        lifecycle.cancel_order(db, "u1", order.id)
    assert exc.value.code == "invalid_status"


def test_gateway_success_event(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock
    event = PaymentEventIn(event_id="evt-1", outcome=GatewayOutcome.SUCCEEDED, payment_id=order.payment.id, external_ref="pi_1")

    result = lifecycle.apply_gateway_event(db, "mockpay", event)

    assert result == {"received": True, "applied": True, "order_id": order.id}
    assert order.status == OrderStatus.PAID.value
    assert order.payment_status == PaymentStatus.CAPTURED.value
    assert order.payment.external_ref == "pi_1"
    assert order.payment.provider == "MOCKPAY"
    assert ledger.on_hand_for(db, variant.id) == 3

    # redelivery changes nothing
    lifecycle.apply_gateway_event(db, "mockpay", event)
    assert ledger.on_hand_for(db, variant.id) == 3


def test_gateway_failed_event(db, lifecycle, order_with_stock):
    order, _ = order_with_stock
    event = PaymentEventIn(event_id="evt-2", outcome=GatewayOutcome.FAILED, order_id=order.id)

    lifecycle.apply_gateway_event(db, "mockpay", event)

    assert order.status == OrderStatus.PENDING.value
    assert order.payment_status == PaymentStatus.FAILED.value


def test_gateway_event_for_unknown_order_is_ignored(db, lifecycle, audit_entries):
    event = PaymentEventIn(event_id="evt-3", outcome=GatewayOutcome.SUCCEEDED, order_id="missing")

    result = lifecycle.apply_gateway_event(db, "mockpay", event)

    assert result["applied"] is False
    assert audit_entries[-1]["action"] == "payment_webhook"
    assert audit_entries[-1]["meta"]["applied"] is False


def test_gateway_success_on_canceled_order_keeps_it_canceled(db, lifecycle, ledger, order_with_stock):
    order, variant = order_with_stock
    lifecycle.update_order_status(db, order.id, OrderStatus.CANCELED)

    event = PaymentEventIn(event_id="evt-4", outcome=GatewayOutcome.SUCCEEDED, order_id=order.id)
    lifecycle.apply_gateway_event(db, "mockpay", event)

    assert order.status == OrderStatus.CANCELED.value
    assert order.payment_status == PaymentStatus.CAPTURED.value
    assert ledger.on_hand_for(db, variant.id) == 3


def test_list_and_get_orders(db, lifecycle, order_with_stock):
    order, _ = order_with_stock

    assert [o.id for o in lifecycle.list_orders(db, "u1")] == [order.id]
    assert lifecycle.list_orders(db, "u2") == []
    assert lifecycle.get_order(db, order.id, user_id="u1") is order
    with pytest.raises(NotFoundError):
        lifecycle.get_order(db, order.id, user_id="u2")
