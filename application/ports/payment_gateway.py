"""
Polar gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckout,
    CreateRefund,
    InvoiceGeneration,
    InvoiceLink,
    RefundResult,
)
from application.dtos.webhooks import WebhookEnvelope


@runtime_checkable
class PolarGateway(Protocol):
    """Gateway protocol for the Polar API.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession: ...

    async def get_checkout(self, checkout_id: str) -> dict[str, Any]: ...

    async def generate_invoice(self, order_id: str) -> InvoiceGeneration:
        """Schedule invoice rendering; an already generated invoice is not an error."""
        ...

    async def get_invoice(self, order_id: str) -> Optional[InvoiceLink]:
        """Return the invoice URL, or None while Polar has not rendered it."""
        ...

    async def create_refund(self, req: CreateRefund) -> RefundResult: ...

    async def list_refunds(self, order_id: str) -> list[RefundResult]: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEnvelope: ...

    async def aclose(self) -> None: ...
