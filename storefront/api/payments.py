from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from storefront.api.deps import get_reconciliation
from storefront.core.config import settings
from storefront.core.logging import get_logger
from storefront.schemas import WebhookPayload
from storefront.services.payos import verify_webhook_signature, webhook_verification_ready
from storefront.services.reconciliation import PaymentReconciliationHandler

log = get_logger("api.payments")

router = APIRouter()

ACK = {"success": True}

@router.post("/v1/payos/callback")
async def payos_callback(request: Request, handler: PaymentReconciliationHandler = Depends(get_reconciliation)):
    # Always 200: the gateway disables webhooks that answer with errors.
    try:
        raw = await request.json()
    except Exception:
        log.info("payment callback with unreadable body acknowledged")
        return ACK
    try:
        payload = WebhookPayload.model_validate(raw)
    except Exception:
        log.warning("payment callback with malformed payload acknowledged")
        return ACK

    data = raw.get("data") if isinstance(raw.get("data"), dict) else None
    order_code = payload.data.orderCode if payload.data else None
    if order_code in (None, ""):
        return ACK

    if settings.PAYOS_VERIFY_WEBHOOK:
        if not webhook_verification_ready():
            return ACK
        if not verify_webhook_signature(data, payload.signature, settings.PAYOS_CHECKSUM_KEY):
            log.warning("payment callback for order %s has a bad signature, ignored", order_code)
            return ACK

    ack = await run_in_threadpool(
        handler.handle_callback,
        str(order_code),
        None if payload.code is None else str(payload.code),
        payload.desc,
    )
    log.debug("payment callback for order %s: %s", order_code, ack.outcome)
    return ACK
