"""PayOS payment-link client and webhook signature check."""
import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from storefront.core.config import settings
from storefront.core.errors import PaymentGatewayError
from storefront.core.logging import get_logger

log = get_logger("payos")

DESCRIPTION_MAX_LEN = 25
SUCCESS_CODE = "00"


@dataclass(frozen=True)
class PaymentLinkRequest:
    order_code: str
    amount: int
    description: str
    cancel_url: str
    return_url: str


class PaymentGateway(Protocol):
    def create_payment_link(self, req: PaymentLinkRequest) -> str: ...


def truncate_description(description: str) -> str:
    return description[:DESCRIPTION_MAX_LEN]


def _sign(payload: str, key: str) -> str:
    return hmac.new(key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _as_field(v) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def payment_request_signature(req: PaymentLinkRequest, key: str) -> str:
    payload = (
        f"amount={req.amount}&cancelUrl={req.cancel_url}&description={req.description}"
        f"&orderCode={int(req.order_code)}&returnUrl={req.return_url}"
    )
    return _sign(payload, key)


def webhook_signature(data: dict, key: str) -> str:
    payload = "&".join(f"{k}={_as_field(data[k])}" for k in sorted(data))
    return _sign(payload, key)


def verify_webhook_signature(data: dict, signature: Optional[str], key: str) -> bool:
    if not signature or not key:
        return False
    return hmac.compare_digest(webhook_signature(data, key), signature)


def webhook_verification_ready() -> bool:
    """False, with a warning, when signature checks are on but no checksum key is set."""
    if settings.PAYOS_VERIFY_WEBHOOK and not settings.PAYOS_CHECKSUM_KEY:
        log.warning("PAYOS_VERIFY_WEBHOOK is on but PAYOS_CHECKSUM_KEY is empty: payment callbacks will be ignored")
        return False
    return True


class PayOSClient:
    def __init__(self, base_url: str = None, client_id: str = None, api_key: str = None,
                 checksum_key: str = None, timeout: float = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or settings.PAYOS_BASE).rstrip("/")
        self.client_id = client_id if client_id is not None else settings.PAYOS_CLIENT_ID
        self.api_key = api_key if api_key is not None else settings.PAYOS_API_KEY
        self.checksum_key = checksum_key if checksum_key is not None else settings.PAYOS_CHECKSUM_KEY
        self.timeout = timeout or settings.PAYOS_TIMEOUT_SECONDS
        self.transport = transport

    def create_payment_link(self, req: PaymentLinkRequest) -> str:
        req = PaymentLinkRequest(
            order_code=req.order_code,
            amount=req.amount,
            description=truncate_description(req.description),
            cancel_url=req.cancel_url,
            return_url=req.return_url,
        )
        body = {
            "orderCode": int(req.order_code),
            "amount": req.amount,
            "description": req.description,
            "cancelUrl": req.cancel_url,
            "returnUrl": req.return_url,
            "signature": payment_request_signature(req, self.checksum_key),
        }
        headers = {"x-client-id": self.client_id, "x-api-key": self.api_key}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(f"{self.base_url}/v2/payment-requests", json=body, headers=headers)
        except httpx.RequestError as e:
            log.error("PayOS unreachable for order %s: %s", req.order_code, e)
            raise PaymentGatewayError("Payment gateway unavailable") from e

        if resp.status_code >= 400:
            log.error("PayOS answered HTTP %s for order %s", resp.status_code, req.order_code)
            raise PaymentGatewayError(f"Payment gateway error (HTTP {resp.status_code})")
        try:
            payload = resp.json()
        except ValueError as e:
            raise PaymentGatewayError("Payment gateway returned an invalid response") from e

        code = str(payload.get("code"))
        data = payload.get("data") or {}
        if code != SUCCESS_CODE or not data.get("checkoutUrl"):
            log.error("PayOS rejected order %s: %s %s", req.order_code, code, payload.get("desc"))
            raise PaymentGatewayError(f"Payment gateway rejected the request: {payload.get('desc')}", code=code)
        return data["checkoutUrl"]
