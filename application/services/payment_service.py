"""
Application service orchestrating direct Polar use-cases (checkout, refund,
invoice).

This class depends only on the application PolarGateway port and DTOs.
Gateway implementations are provided by infrastructure and must be injected
from the composition root (API lifespan), keeping dependencies one-way.
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckout,
    CreateRefund,
    InvoiceGeneration,
    InvoiceLink,
    RefundResult,
)
from application.ports.payment_gateway import PolarGateway
from core.logging_config import get_logger
from domain.common.exceptions import InvoiceNotReadyException


logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        gateway: PolarGateway,
        *,
        default_success_url: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self._default_success_url = default_success_url

    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession:
        if not req.success_url and self._default_success_url:
            req = req.model_copy(update={"success_url": self._default_success_url})
        logger.info(
            "checkout_create_request",
            product_id=req.product_id,
            provider=self.gateway.provider,
            has_email=req.customer_email is not None,
        )
        session = await self.gateway.create_checkout(req)
        logger.info("checkout_create_response", checkout_id=session.id, provider=self.gateway.provider)
        return session

    async def get_checkout(self, checkout_id: str) -> dict[str, Any]:
        logger.info("checkout_query_request", checkout_id=checkout_id)
        return await self.gateway.get_checkout(checkout_id)

    async def refund(self, req: CreateRefund) -> RefundResult:
        # The ledger learns about the refund from the order.refunded / refund.created webhook
        logger.info(
            "payment_refund_request",
            order_id=req.order_id,
            amount=req.amount,
            reason=req.reason,
            provider=self.gateway.provider,
        )
        result = await self.gateway.create_refund(req)
        logger.info("payment_refund_response", order_id=req.order_id, refund_id=result.id, status=result.status)
        return result

    async def list_refunds(self, order_id: str) -> list[RefundResult]:
        return await self.gateway.list_refunds(order_id)

    async def generate_invoice(self, order_id: str) -> InvoiceGeneration:
        generation = await self.gateway.generate_invoice(order_id)
        logger.info("invoice_generate_response", order_id=order_id, status=generation.status)
        return generation

    async def get_invoice(self, order_id: str) -> InvoiceLink:
        link = await self.gateway.get_invoice(order_id)
        if link is None:
            raise InvoiceNotReadyException(order_id)
        return link
