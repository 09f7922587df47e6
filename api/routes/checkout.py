"""
Checkout API routes: hand a Polar hosted-checkout URL to the frontend.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_payment_service
from application.dtos.payments import CreateCheckout
from application.services.payment_service import PaymentService
from core.response import success_response


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/create", summary="Create checkout session")
async def create_checkout(payload: CreateCheckout, service: PaymentService = Depends(get_payment_service)):
    session = await service.create_checkout(payload)
    return success_response(data=session, message="Checkout created")


@router.get("/{checkout_id}", summary="Checkout session from Polar")
async def get_checkout(checkout_id: str, service: PaymentService = Depends(get_payment_service)):
    return success_response(data=await service.get_checkout(checkout_id))
