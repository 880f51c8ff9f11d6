# fulfillment/api/deps.py
from typing import Dict

from fastapi import Depends

from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.cart_service import CartService
from fulfillment.services.checkout_service import CheckoutOrchestrator
from fulfillment.services.idempotency_service import IdempotencyGate
from fulfillment.services.lock_service import LockService
from fulfillment.services.order_service import OrderLifecycleController
from fulfillment.services.payment_gateway import PaymentGateway, build_gateways
from fulfillment.services.payment_service import PaymentService
from fulfillment.services.stock_service import StockLedger
from fulfillment.services.undo_service import AuditService

# collaborators with outside I/O are dependencies of their own so tests can override them


def get_audit_logger() -> AuditLogger:
    return AuditLogger()


def get_lock_service() -> LockService:
    return LockService()


def get_gateways() -> Dict[str, PaymentGateway]:
    return build_gateways()


def get_idempotency_gate(lock_service: LockService = Depends(get_lock_service)) -> IdempotencyGate:
    return IdempotencyGate(lock_service=lock_service)


def get_cart_service() -> CartService:
    return CartService()


def get_stock_ledger(audit: AuditLogger = Depends(get_audit_logger)) -> StockLedger:
    return StockLedger(audit=audit)


def get_lifecycle(
    ledger: StockLedger = Depends(get_stock_ledger),
    audit: AuditLogger = Depends(get_audit_logger),
) -> OrderLifecycleController:
    return OrderLifecycleController(ledger=ledger, audit=audit)


def get_checkout(audit: AuditLogger = Depends(get_audit_logger)) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(audit=audit)


def get_payment_service(
    gateways: Dict[str, PaymentGateway] = Depends(get_gateways),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
    audit: AuditLogger = Depends(get_audit_logger),
) -> PaymentService:
    return PaymentService(gateways=gateways, lifecycle=lifecycle, audit=audit)


def get_audit_service(
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
    audit: AuditLogger = Depends(get_audit_logger),
) -> AuditService:
    return AuditService(lifecycle=lifecycle, ledger=lifecycle.ledger, audit=audit)
