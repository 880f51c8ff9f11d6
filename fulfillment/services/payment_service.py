# fulfillment/services/payment_service.py
from typing import Dict

import requests
from sqlalchemy.orm import Session

from fulfillment.data.database import transactional
from fulfillment.data.models.order import OrderModel
from fulfillment.data.models.payment import PaymentModel
from fulfillment.domain.enums import PaymentStatus
from fulfillment.domain.errors import GatewayError, ValidationError
from fulfillment.domain.schemas import PaymentOut
from fulfillment.repos.order_repo import OrderRepo
from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.order_service import PAYMENT_TRANSITIONS, OrderLifecycleController, can_transition
from fulfillment.services.payment_gateway import (
    PaymentGateway,
    PaymentRequest,
    build_gateways,
    normalize_provider,
)
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

# a payment in any other state is settled and returned untouched
RETRYABLE_PAYMENT_STATUSES = {PaymentStatus.PENDING.value, PaymentStatus.FAILED.value}


def payment_view(payment: PaymentModel, checkout_url: str | None = None) -> dict:
    view = PaymentOut.model_validate(payment).model_dump()
    view["checkout_url"] = checkout_url
    return view


class PaymentService:
    def __init__(
        self,
        gateways: Dict[str, PaymentGateway] | None = None,
        lifecycle: OrderLifecycleController | None = None,
        audit: AuditLogger | None = None,
    ):
        self.gateways = build_gateways() if gateways is None else gateways
        self.audit = audit or AuditLogger()
        self.lifecycle = lifecycle or OrderLifecycleController(audit=self.audit)

    @transactional()
    def create_payment(
        self,
        db: Session,
        user_id: str,
        order_id: str,
        provider: str | None = None,
        phone: str | None = None,
    ) -> dict:
        order = self.lifecycle.get_order(db, order_id, user_id=user_id)
        payment = order.payment
        provider = normalize_provider(provider) or (payment.provider if payment else None)

        if provider is None:
            if payment is None:
                payment = self._create_pending(db, order, None)
            return payment_view(payment)

        gateway = self.gateways.get(provider)
        if gateway is None:
            raise ValidationError(f"Payment provider {provider} is not supported", code="unsupported_provider")

        if payment is not None and payment.status not in RETRYABLE_PAYMENT_STATUSES:
            logger.info(f"Payment {payment.id} already {payment.status}, returned as is")
            return payment_view(payment)

        if payment is None:
            payment = self._create_pending(db, order, provider)

        request = PaymentRequest(
            order_id=order.id,
            payment_id=payment.id,
            amount=order.total,
            currency=order.currency,
            phone=phone,
            lines=[
                {
                    "sku": item.sku_snapshot,
                    "name": item.name_snapshot,
                    "quantity": item.quantity,
                    "unit_price": str(item.price_snapshot),
                }
                for item in order.items
            ],
        )
        try:
            result = gateway.create_session(request)
        except requests.RequestException as e:
            logger.warning(f"Gateway {provider} failed for order {order.id}: {e}")
            raise GatewayError(f"Payment provider {provider} is unavailable") from e

        payment.provider = provider
        if result.external_ref:
            payment.external_ref = result.external_ref
        db.flush()

        outcome = PaymentStatus.FAILED if not result.ok else result.payment_status
        current = PaymentStatus(order.payment_status)
        if outcome is not None and outcome != current and can_transition(PAYMENT_TRANSITIONS, current, outcome):
            self.lifecycle.transition(
                db,
                order.id,
                payment_status=outcome,
                actor_id=user_id,
                provider=provider,
                external_ref=result.external_ref,
            )

        self.audit.record(
            db,
            user_id,
            "payment_create",
            "payment",
            payment.id,
            meta={
                "order_id": order.id,
                "provider": provider,
                "external_ref": payment.external_ref,
                "status": payment.status,
            },
        )
        logger.info(f"Payment {payment.id} for order {order.id} sent to {provider}, status {payment.status}")
        return payment_view(payment, checkout_url=result.checkout_url)

    def _create_pending(self, db: Session, order: OrderModel, provider: str | None) -> PaymentModel:
        payment = PaymentModel(
            order_id=order.id,
            status=PaymentStatus.PENDING.value,
            amount=order.total,
            provider=provider,
        )
        OrderRepo(db).create_payment(payment)
        order.payment = payment
        return payment
