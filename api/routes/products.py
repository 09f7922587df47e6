"""
Product catalogue route.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_payment_query_service
from application.services.payment_query_service import PaymentQueryService
from core.response import success_response


router = APIRouter(prefix="/products", tags=["Products"])


@router.get("", summary="Active products")
async def list_products(service: PaymentQueryService = Depends(get_payment_query_service)):
    products = await service.list_products()
    return success_response(data=products)
