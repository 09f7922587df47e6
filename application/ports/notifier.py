"""
Outbound customer notifications port.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass
class InvoiceEmail:
    customer_email: str
    invoice_url: str
    order_id: str
    amount: int
    currency: str
    customer_name: Optional[str] = None
    product_name: Optional[str] = None


@dataclass
class RefundEmail:
    customer_email: str
    order_id: str
    refund_amount: int
    currency: str
    refund_reason: str
    customer_name: Optional[str] = None
    product_name: Optional[str] = None


@runtime_checkable
class EmailSender(Protocol):
    async def send_invoice(self, message: InvoiceEmail) -> None: ...

    async def send_refund(self, message: RefundEmail) -> None: ...
