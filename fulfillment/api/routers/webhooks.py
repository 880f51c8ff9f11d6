# fulfillment/api/routers/webhooks.py
from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as PayloadError
from sqlalchemy.orm import Session

from fulfillment.api.deps import get_lifecycle
from fulfillment.data.database import get_db
from fulfillment.domain.errors import ValidationError
from fulfillment.domain.schemas import PaymentEventIn
from fulfillment.services.order_service import OrderLifecycleController
from fulfillment.services.payment_gateway import verify_signature
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payments/{provider}")
async def payment_webhook(
    provider: str,
    request: Request,
    signature: str | None = Header(None, alias="X-Signature"),
    db: Session = Depends(get_db),
    lifecycle: OrderLifecycleController = Depends(get_lifecycle),
):
    # the signature covers the exact bytes sent, verify before parsing
    raw = await request.body()
    if not verify_signature(raw, signature):
        logger.warning(f"Rejected {provider} webhook with a bad signature")
        raise ValidationError("Webhook signature mismatch", code="invalid_signature", status_code=401)

    try:
        event = PaymentEventIn.model_validate_json(raw)
    except PayloadError as e:
        raise ValidationError(f"Invalid webhook payload: {e.error_count()} errors", code="invalid_payload") from e

    return await run_in_threadpool(lifecycle.apply_gateway_event, db, provider, event)
