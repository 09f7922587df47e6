"""Product catalogue entity: maps a Polar product id to a subscription tier."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from domain.common.exceptions import DomainValidationException
from domain.user.entity import SubscriptionTier


class BillingInterval(str, Enum):
    MONTH = "month"
    YEAR = "year"
    ONE_TIME = "one_time"
    FOREVER = "forever"


@dataclass
class Product:
    id: Optional[int]
    polar_product_id: str
    name: str
    tier: SubscriptionTier
    description: Optional[str] = None
    price: int = 0
    currency: str = "USD"
    interval: BillingInterval = BillingInterval.MONTH
    features: List[str] = field(default_factory=list)
    highlighted: bool = False
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.polar_product_id:
            raise DomainValidationException("polar_product_id is required", field="polar_product_id")
        if self.price < 0:
            raise DomainValidationException("price must not be negative", field="price")
        self.currency = (self.currency or "USD").upper()
        if self.features is None:
            self.features = []
