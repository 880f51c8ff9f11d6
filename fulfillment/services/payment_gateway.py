# fulfillment/services/payment_gateway.py
import hashlib
import hmac
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Protocol

import requests

from fulfillment.domain.enums import PaymentStatus
from fulfillment.utils.logging import get_logger
from fulfillment.utils.retry import http_retry
from fulfillment.utils.settings import (
    PAYMENT_GATEWAY_TIMEOUT,
    PAYMENT_GATEWAY_URLS,
    PAYMENT_WEBHOOK_SECRET,
)

logger = get_logger(__name__)


def normalize_provider(provider: str | None) -> str | None:
    if not provider:
        return None
    normalized = provider.strip().upper()
    return normalized or None


@dataclass(frozen=True)
class PaymentRequest:
    order_id: str
    payment_id: str
    amount: Decimal
    currency: str
    phone: str | None = None
    lines: List[dict] = field(default_factory=list)


@dataclass(frozen=True)
class GatewayResult:
    ok: bool
    external_ref: str | None = None
    checkout_url: str | None = None
    # set when the gateway settles synchronously (e.g. mobile money push)
    payment_status: PaymentStatus | None = None


class PaymentGateway(Protocol):
    provider: str

    def create_session(self, request: PaymentRequest) -> GatewayResult: ...


class HttpPaymentGateway:
    """
    Talks to a provider adapter service over HTTP. The adapter owns the
    provider's wire protocol and answers with a normalized session document.
    """

    def __init__(self, provider: str, base_url: str, timeout: int = PAYMENT_GATEWAY_TIMEOUT, session=None):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @http_retry()
    def _post(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"PaymentGateway[{self.provider}] POST {url}")
        resp = self.session.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def create_session(self, request: PaymentRequest) -> GatewayResult:
        data = self._post(
            "/sessions",
            {
                "order_id": request.order_id,
                "payment_id": request.payment_id,
                "amount": str(request.amount),
                "currency": request.currency,
                "phone": request.phone,
                "lines": request.lines,
            },
        )
        status = data.get("payment_status")
        return GatewayResult(
            ok=bool(data.get("ok", True)),
            external_ref=data.get("external_ref"),
            checkout_url=data.get("checkout_url"),
            payment_status=PaymentStatus(status) if status else None,
        )


def build_gateways(urls: Dict[str, str] | None = None) -> Dict[str, PaymentGateway]:
    urls = PAYMENT_GATEWAY_URLS if urls is None else urls
    return {provider: HttpPaymentGateway(provider, url) for provider, url in urls.items()}


def sign_payload(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None = None) -> bool:
    secret = PAYMENT_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(raw_body, secret), signature)
