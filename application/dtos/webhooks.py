"""
Polar webhook payloads as a tagged union of pydantic models.

Validation happens once, right after signature verification. Every model
accepts both Polar's snake_case keys and the camelCase keys produced by the
JS SDK. Unknown event types validate into `UnknownEvent` and are acknowledged
without processing.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter
from pydantic.alias_generators import to_camel


class PolarModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CustomerRef(PolarModel):
    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    external_id: Optional[str] = None


class ProductRef(PolarModel):
    id: Optional[str] = None
    name: Optional[str] = None


class DiscountRef(PolarModel):
    id: Optional[str] = None
    name: Optional[str] = None
    code: Optional[str] = None
    type: Optional[str] = None
    amount: Optional[int] = None
    basis_points: Optional[int] = None


class EventData(PolarModel):
    """Fields shared by every payload that can identify a customer."""

    id: str
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_external_id: Optional[str] = None
    external_customer_id: Optional[str] = None
    customer: Optional[CustomerRef] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PricedData(EventData):
    product_id: Optional[str] = None
    product: Optional[ProductRef] = None
    amount: Optional[int] = None
    net_amount: Optional[int] = None
    total_amount: Optional[int] = None
    subtotal_amount: Optional[int] = None
    discount_amount: Optional[int] = None
    currency: Optional[str] = None
    discount_id: Optional[str] = None
    discount: Optional[DiscountRef] = None

    @property
    def product_name(self) -> Optional[str]:
        return self.product.name if self.product else None


class CheckoutData(PricedData):
    status: Optional[str] = None
    url: Optional[str] = None
    expires_at: Optional[datetime] = None


class OrderData(PricedData):
    status: Optional[str] = None
    checkout_id: Optional[str] = None
    subscription_id: Optional[str] = None
    billing_reason: Optional[str] = None
    paid: Optional[bool] = None
    is_invoice_generated: Optional[bool] = None
    refunded_amount: Optional[int] = None
    created_at: Optional[datetime] = None


class SubscriptionData(PricedData):
    status: Optional[str] = None
    checkout_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: Optional[bool] = None
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class RefundData(EventData):
    order_id: Optional[str] = None
    subscription_id: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    revoke_benefits: Optional[bool] = None
    created_at: Optional[datetime] = None


class CustomerData(PolarModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    external_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class CheckoutEvent(PolarModel):
    type: Literal["checkout.created", "checkout.updated"]
    data: CheckoutData


class OrderEvent(PolarModel):
    type: Literal["order.created", "order.paid", "order.updated", "order.refunded"]
    data: OrderData


class SubscriptionEvent(PolarModel):
    type: Literal[
        "subscription.created",
        "subscription.updated",
        "subscription.active",
        "subscription.uncanceled",
        "subscription.canceled",
        "subscription.revoked",
    ]
    data: SubscriptionData


class RefundEvent(PolarModel):
    type: Literal["refund.created", "refund.updated"]
    data: RefundData


class CustomerEvent(PolarModel):
    type: Literal["customer.created", "customer.updated", "customer.state_changed"]
    data: CustomerData


class UnknownEvent(PolarModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


_EVENT_TAGS: dict[str, str] = {
    "checkout.created": "checkout",
    "checkout.updated": "checkout",
    "order.created": "order",
    "order.paid": "order",
    "order.updated": "order",
    "order.refunded": "order",
    "subscription.created": "subscription",
    "subscription.updated": "subscription",
    "subscription.active": "subscription",
    "subscription.uncanceled": "subscription",
    "subscription.canceled": "subscription",
    "subscription.revoked": "subscription",
    "refund.created": "refund",
    "refund.updated": "refund",
    "customer.created": "customer",
    "customer.updated": "customer",
    "customer.state_changed": "customer",
}


def _event_tag(value: Any) -> str:
    event_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return _EVENT_TAGS.get(event_type, "unknown")


PolarEvent = Annotated[
    Union[
        Annotated[CheckoutEvent, Tag("checkout")],
        Annotated[OrderEvent, Tag("order")],
        Annotated[SubscriptionEvent, Tag("subscription")],
        Annotated[RefundEvent, Tag("refund")],
        Annotated[CustomerEvent, Tag("customer")],
        Annotated[UnknownEvent, Tag("unknown")],
    ],
    Discriminator(_event_tag),
]

_event_adapter: TypeAdapter[PolarEvent] = TypeAdapter(PolarEvent)


def parse_event(payload: dict[str, Any]) -> PolarEvent:
    """Validate a decoded webhook body into its event model."""
    return _event_adapter.validate_python(payload)


class WebhookEnvelope(BaseModel):
    """A verified delivery: Standard Webhooks message id plus the typed event."""

    webhook_id: str
    timestamp: Optional[datetime] = None
    event: PolarEvent

    @property
    def type(self) -> str:
        return self.event.type
