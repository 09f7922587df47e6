"""
Factory for the Polar gateway client.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_gateway import PolarGateway


def build_polar_client(settings: Optional[PaymentSettings] = None) -> PolarGateway:
    """Construct one client per application lifespan; callers own aclose()."""
    from .polar_client import PolarClient

    return PolarClient(settings or payment_settings)
