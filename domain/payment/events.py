"""
Payment domain events.

Dataclass events record ledger transitions that need follow-up work outside
the reconciliation transaction (invoice generation, customer emails).
Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    checkout_id: str
    order_id: Optional[str] = None
    # filled by the reconciliation service from the resolved identity
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class OrderCompleted(PaymentEvent):
    """Payment reached `completed` through an order event; an invoice can be requested."""


@dataclass
class InvoiceReady(PaymentEvent):
    """Polar reported the order invoice as generated."""


@dataclass
class PaymentRefunded(PaymentEvent):
    refund_id: Optional[str] = None
    amount: Optional[int] = None
    reason: Optional[str] = None
    revoke_benefits: bool = False
