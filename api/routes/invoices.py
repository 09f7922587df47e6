"""
Invoice API routes keyed by Polar order id.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette import status as http_status

from api.dependencies import get_payment_service
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/generate/{order_id}", summary="Schedule invoice generation", status_code=http_status.HTTP_202_ACCEPTED)
async def generate_invoice(order_id: str, service: PaymentService = Depends(get_payment_service)):
    generation = await service.generate_invoice(order_id)
    return success_response(data=generation, message="Invoice generation scheduled")


@router.get("/{order_id}", summary="Invoice URL of an order")
async def get_invoice(order_id: str, service: PaymentService = Depends(get_payment_service)):
    link = await service.get_invoice(order_id)
    return success_response(data=link)
