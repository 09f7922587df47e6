"""
Polar webhook receiver.

Verification runs on the raw request bytes before anything is parsed. Once a
delivery is authentic it is acknowledged with 200 even when reconciliation
finds nothing to do; only configuration problems and unexpected failures
answer 5xx so Polar retries the delivery.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_polar_gateway, get_reconciliation_service
from application.ports.payment_gateway import PolarGateway
from application.services.reconciliation_service import ReconciliationService
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.exceptions import (
    PaymentConfigurationError,
    PaymentSignatureError,
)


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/polar", summary="Receive Polar webhook")
async def polar_webhook(
    request: Request,
    gateway: PolarGateway | None = Depends(get_polar_gateway),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}

    if gateway is None:
        logger.error("webhook_gateway_missing")
        return JSONResponse(status_code=500, content={"error": "Webhook receiver not configured"})

    try:
        envelope = gateway.parse_webhook(headers, raw_body)
    except PaymentSignatureError as exc:
        logger.warning("webhook_signature_invalid", reason=exc.message)
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})
    except PaymentConfigurationError as exc:
        logger.error("webhook_secret_missing", setting=(exc.details or {}).get("setting"))
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})
    except DomainValidationException as exc:
        return JSONResponse(status_code=400, content={"error": exc.message})

    logger.info("webhook_received", webhook_id=envelope.webhook_id, event_type=envelope.type)
    try:
        await service.reconcile(envelope.event)
    except Exception as exc:
        logger.error(
            "webhook_processing_failed",
            webhook_id=envelope.webhook_id,
            event_type=envelope.type,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return {"received": True}
