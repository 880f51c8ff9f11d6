# fulfillment/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.orm import Session

from fulfillment.api.deps import (
    get_checkout,
    get_idempotency_gate,
    get_lifecycle,
    get_payment_service,
)
from fulfillment.data.database import get_db
from fulfillment.domain.schemas import (
    CheckoutIn,
    CheckoutSummaryOut,
    CreatePaymentIn,
    OrderOut,
    PaymentOut,
)
from fulfillment.services.checkout_service import CheckoutOrchestrator
from fulfillment.services.idempotency_service import IdempotencyGate
from fulfillment.services.order_service import OrderLifecycleController, order_view
from fulfillment.services.payment_service import PaymentService

router = APIRouter(tags=["orders"])

REPLAY_HEADER = "Idempotent-Replayed"


@router.get("/checkout/summary", response_model=CheckoutSummaryOut)
def checkout_summary(
    user_id: str = Query(...),
    coupon_code: str | None = Query(None),
    db: Session = Depends(get_db),
    checkout: CheckoutOrchestrator = Depends(get_checkout),
):
    return checkout.summary(db, user_id, coupon_code)


@router.post("/checkout", response_model=OrderOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    response: Response,
    user_id: str = Query(...),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    gate: IdempotencyGate = Depends(get_idempotency_gate),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout),
    payments: PaymentService = Depends(get_payment_service),
):
    """
    Turns the cart into an order. With a payment provider the payment
    session is opened in the same request.
    """

    def operation(db: Session):
        order = orchestrator.checkout(
            db,
            user_id,
            coupon_code=payload.coupon_code,
            payment_provider=payload.payment_provider,
        )
        view = order_view(order)
        if payload.payment_provider:
            view["payment"] = payments.create_payment(
                db,
                user_id,
                order.id,
                provider=payload.payment_provider,
                phone=payload.phone,
            )
        return view

    result = gate.run(db, user_id, idempotency_key, payload.model_dump(mode="json"), operation)
    if result.replayed:
        response.headers[REPLAY_HEADER] = "true"
    return result.response


@router.get("/orders", response_model=List[OrderOut])
def list_orders(
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
):
    return lifecycle.list_orders(db, user_id)


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
):
    return lifecycle.get_order(db, order_id, user_id=user_id)


@router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: str,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
):
    return lifecycle.cancel_order(db, user_id, order_id)


@router.post("/orders/{order_id}/payments", response_model=PaymentOut, status_code=201)
def create_payment(
    order_id: str,
    payload: CreatePaymentIn,
    response: Response,
    user_id: str = Query(...),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
    gate: IdempotencyGate = Depends(get_idempotency_gate),
    payments: PaymentService = Depends(get_payment_service),
):
    body = {"order_id": order_id, **payload.model_dump(mode="json")}
    result = gate.run(
        db,
        user_id,
        idempotency_key,
        body,
        lambda db: payments.create_payment(db, user_id, order_id, provider=payload.provider, phone=payload.phone),
    )
    if result.replayed:
        response.headers[REPLAY_HEADER] = "true"
    return result.response
