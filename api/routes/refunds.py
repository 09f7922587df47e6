"""
Refund API routes.

Creating a refund only asks Polar; the local ledger follows from the
`refund.created` / `order.refunded` webhooks.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_payment_service
from application.dtos.payments import CreateRefund
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(prefix="/refunds", tags=["Refunds"])


@router.post("/create", summary="Refund an order")
async def create_refund(payload: CreateRefund, service: PaymentService = Depends(get_payment_service)):
    result = await service.refund(payload)
    return success_response(data=result, message="Refund requested")


@router.get("/order/{order_id}", summary="Refunds of an order")
async def list_order_refunds(order_id: str, service: PaymentService = Depends(get_payment_service)):
    refunds = await service.list_refunds(order_id)
    return success_response(data=refunds)
