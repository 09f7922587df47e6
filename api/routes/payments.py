"""
Payments query API routes.

Read-only views over the local Payment ledger. Keep this thin: no SDK details here.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from api.dependencies import get_payment_query_service
from application.services.payment_query_service import PaymentQueryService
from core.config import settings
from core.response import page_response, success_response


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/session/{checkout_id}", summary="Payment by checkout id")
async def get_payment_by_checkout(
    checkout_id: str = Path(..., min_length=1),
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    payment = await service.get_by_checkout(checkout_id)
    return success_response(data=payment)


@router.get("/user/{email}", summary="Payments of a customer, newest first")
async def list_user_payments(
    email: str,
    status: Optional[str] = Query(default=None, description="pending | completed | failed | refunded"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1),
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    limit = min(limit, settings.MAX_PAGE_SIZE)
    payments = await service.list_by_email(email, status=status, skip=skip, limit=limit)
    return page_response(payments, skip=skip, limit=limit)


@router.get("/{payment_id}/invoice", summary="Invoice URL of a payment")
async def get_payment_invoice(
    payment_id: int,
    service: PaymentQueryService = Depends(get_payment_query_service),
):
    invoice = await service.get_invoice_url(payment_id)
    return success_response(data=invoice)
