"""
Polar REST adapter (httpx) plus Standard Webhooks verification.

Notes on Polar API usage (as of 2025-10):
- Bearer organization access token on every call; sandbox lives on a separate host.
- Invoices render asynchronously: POST /v1/orders/{id}/invoice answers 202, or
  409 once the invoice already exists; GET answers 404 until it is ready.
- Webhooks follow the Standard Webhooks scheme (`webhook-id`,
  `webhook-timestamp`, `webhook-signature: v1,<base64>`). Polar's SDK feeds the
  raw secret to the verifier base64-encoded, so the secret bytes themselves
  are the HMAC key; we do the same.
"""
from __future__ import annotations

import base64
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from standardwebhooks.webhooks import Webhook, WebhookVerificationError

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckout,
    CreateRefund,
    InvoiceGeneration,
    InvoiceLink,
    RefundResult,
)
from application.dtos.webhooks import WebhookEnvelope, parse_event
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentConfigurationError,
    PaymentSignatureError,
)


logger = get_logger(__name__)

_REQUIRED_HEADERS = ("webhook-id", "webhook-timestamp", "webhook-signature")


class PolarClient(BasePaymentClient):
    provider = "polar"

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        cfg = settings or payment_settings
        self._settings = cfg
        headers = {"Accept": "application/json"}
        if cfg.polar.access_token:
            headers["Authorization"] = f"Bearer {cfg.polar.access_token}"
        super().__init__(
            base_url=cfg.polar.base_url,
            headers=headers,
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
            transport=transport,
        )

    def _require_token(self) -> None:
        if not self._settings.polar.access_token:
            raise PaymentConfigurationError(
                "POLAR__ACCESS_TOKEN not configured",
                provider=self.provider,
                setting="POLAR__ACCESS_TOKEN",
            )

    # ---- checkouts ----

    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession:  # type: ignore[override]
        self._require_token()
        payload: dict[str, Any] = {
            "products": [req.product_id],
            "success_url": req.success_url or self._settings.polar.success_url,
        }
        if req.customer_email:
            payload["customer_email"] = str(req.customer_email)
        if req.external_customer_id:
            payload["external_customer_id"] = req.external_customer_id
        if req.metadata:
            payload["metadata"] = req.metadata
        resp = await self._request("POST", "/v1/checkouts/", json=payload)
        data = resp.json()
        return CheckoutSession(id=str(data["id"]), url=str(data["url"]))

    async def get_checkout(self, checkout_id: str) -> dict[str, Any]:  # type: ignore[override]
        self._require_token()
        resp = await self._request("GET", f"/v1/checkouts/{checkout_id}")
        return resp.json()

    # ---- invoices ----

    async def generate_invoice(self, order_id: str) -> InvoiceGeneration:  # type: ignore[override]
        self._require_token()
        resp = await self._request("POST", f"/v1/orders/{order_id}/invoice", accept=(409,))
        status = "already_exists" if resp.status_code == 409 else "scheduled"
        return InvoiceGeneration(order_id=order_id, status=status)

    async def get_invoice(self, order_id: str) -> Optional[InvoiceLink]:  # type: ignore[override]
        self._require_token()
        resp = await self._request("GET", f"/v1/orders/{order_id}/invoice", accept=(404,))
        if resp.status_code == 404:
            return None
        url = resp.json().get("url")
        if not url:
            return None
        return InvoiceLink(order_id=order_id, url=url)

    # ---- refunds ----

    async def create_refund(self, req: CreateRefund) -> RefundResult:  # type: ignore[override]
        self._require_token()
        payload: dict[str, Any] = {
            "order_id": req.order_id,
            "reason": req.reason,
            "amount": req.amount,
        }
        if req.comment:
            payload["comment"] = req.comment
        if req.revoke_benefits is not None:
            payload["revoke_benefits"] = req.revoke_benefits
        resp = await self._request("POST", "/v1/refunds/", json=payload)
        return RefundResult.model_validate(resp.json())

    async def list_refunds(self, order_id: str) -> list[RefundResult]:  # type: ignore[override]
        self._require_token()
        resp = await self._request("GET", "/v1/refunds/", params={"order_id": order_id})
        body = resp.json()
        items = body.get("items", []) if isinstance(body, dict) else []
        return [RefundResult.model_validate(item) for item in items]

    # ---- webhooks ----

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEnvelope:  # type: ignore[override]
        secret = self._settings.polar.webhook_secret
        if not secret:
            raise PaymentConfigurationError(
                "POLAR__WEBHOOK_SECRET not configured",
                provider=self.provider,
                setting="POLAR__WEBHOOK_SECRET",
            )

        lowered = {str(k).lower(): v for k, v in headers.items()}
        missing = [h for h in _REQUIRED_HEADERS if not lowered.get(h)]
        if missing:
            raise PaymentSignatureError(
                "Missing webhook signature headers",
                provider=self.provider,
                details={"missing": missing},
            )

        try:
            timestamp = int(lowered["webhook-timestamp"])
        except (TypeError, ValueError):
            raise PaymentSignatureError("Invalid webhook timestamp", provider=self.provider)
        tolerance = self._settings.webhook.tolerance_seconds
        if abs(time.time() - timestamp) > tolerance:
            raise PaymentSignatureError(
                "Webhook timestamp outside tolerance",
                provider=self.provider,
                details={"tolerance_seconds": tolerance},
            )

        verifier = Webhook(base64.b64encode(secret.encode("utf-8")).decode("ascii"))
        try:
            payload = verifier.verify(body, {h: lowered[h] for h in _REQUIRED_HEADERS})
        except WebhookVerificationError as exc:
            raise PaymentSignatureError(str(exc) or "Invalid signature", provider=self.provider) from exc
        except ValueError as exc:
            # signature matched but the body is not JSON
            raise PaymentSignatureError("Webhook body is not valid JSON", provider=self.provider) from exc

        if not isinstance(payload, dict):
            raise PaymentSignatureError("Webhook body is not a JSON object", provider=self.provider)

        try:
            event = parse_event(payload)
        except ValidationError as exc:
            logger.warning(
                "webhook_payload_invalid",
                webhook_id=lowered["webhook-id"],
                event_type=payload.get("type"),
                errors=exc.error_count(),
            )
            raise DomainValidationException(
                "Webhook payload does not match the event schema",
                field="data",
                details={"event_type": payload.get("type")},
            ) from exc

        self._log("webhook_verified", webhook_id=lowered["webhook-id"], event_type=event.type)
        return WebhookEnvelope(
            webhook_id=str(lowered["webhook-id"]),
            timestamp=datetime.fromtimestamp(timestamp, tz=timezone.utc),
            event=event,
        )


