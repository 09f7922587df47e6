"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_serializer

from shared.codes.payment_codes import REFUND_REASONS


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class CreateCheckout(BaseModel):
    product_id: str = Field(..., min_length=1)
    success_url: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    external_customer_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class CheckoutSession(BaseModel):
    id: str
    url: str


class CreateRefund(BaseModel):
    order_id: str = Field(..., min_length=1)
    reason: str
    amount: int = Field(..., ge=1, description="Refund amount in minor units")
    comment: Optional[str] = None
    revoke_benefits: Optional[bool] = None

    @field_validator("reason")
    @classmethod
    def _validate_reason(cls, v: str) -> str:
        if v not in REFUND_REASONS:
            raise ValueError(f"reason must be one of {sorted(REFUND_REASONS)}")
        return v


class RefundResult(BaseModel):
    """Polar refund object; unknown provider fields are kept."""

    id: str
    order_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class InvoiceGeneration(BaseModel):
    order_id: str
    status: Literal["scheduled", "already_exists"]


class InvoiceLink(BaseModel):
    order_id: str
    url: str


class PaymentDTO(DTOBase):
    """Payment record as exposed by the query surface."""

    id: int
    checkout_id: str
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    amount: int
    currency: str
    status: str
    event_type: str
    discount_code: Optional[str] = None
    discount_id: Optional[str] = None
    discount_amount: Optional[int] = None
    discount_type: Optional[str] = None
    original_amount: Optional[int] = None
    app_name: Optional[str] = None
    feature_date: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, payment) -> "PaymentDTO":
        return cls(
            id=payment.id,
            checkout_id=payment.checkout_id,
            customer_id=payment.customer_id,
            customer_email=payment.customer_email,
            product_id=payment.product_id,
            product_name=payment.product_name,
            amount=payment.amount,
            currency=payment.currency,
            status=payment.status.value,
            event_type=payment.event_type,
            discount_code=payment.discount_code,
            discount_id=payment.discount_id,
            discount_amount=payment.discount_amount,
            discount_type=payment.discount_type.value if payment.discount_type else None,
            original_amount=payment.original_amount,
            app_name=payment.app_name,
            feature_date=payment.feature_date,
            metadata=dict(payment.metadata or {}),
            created_at=payment.created_at,
            updated_at=payment.updated_at,
        )


class PaymentInvoiceDTO(DTOBase):
    payment_id: int
    order_id: str
    url: str


class ProductDTO(DTOBase):
    polar_product_id: str
    name: str
    tier: str
    description: Optional[str] = None
    price: int
    currency: str
    interval: str
    features: list[str] = Field(default_factory=list)
    highlighted: bool = False

    @classmethod
    def from_entity(cls, product) -> "ProductDTO":
        return cls(
            polar_product_id=product.polar_product_id,
            name=product.name,
            tier=product.tier.value,
            description=product.description,
            price=product.price,
            currency=product.currency,
            interval=product.interval.value,
            features=list(product.features),
            highlighted=product.highlighted,
        )
