"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so provider credentials can be
rebuilt (tests, lifespan) without touching the application settings.
"""
from __future__ import annotations

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


POLAR_PRODUCTION_URL = "https://api.polar.sh"
POLAR_SANDBOX_URL = "https://sandbox-api.polar.sh"


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300


class InvoiceSettings(BaseModel):
    # Polar renders invoices asynchronously; wait this long before retrying a fetch
    retry_delay_seconds: float = 3.0
    # Polar invoice links expire about ten minutes after issuance; refetch a bit earlier
    url_ttl_seconds: float = 540.0


class EmailSettings(BaseModel):
    enabled: bool = False
    from_address: str = "noreply@example.com"


class PolarSettings(BaseModel):
    access_token: Optional[str] = None
    webhook_secret: Optional[str] = None
    environment: Literal["sandbox", "production"] = "production"
    server_url: Optional[str] = None
    success_url: str = "http://localhost:5173/confirmation?status=success&checkout_id={CHECKOUT_ID}"

    @property
    def base_url(self) -> str:
        if self.server_url:
            return self.server_url.rstrip("/")
        return POLAR_SANDBOX_URL if self.environment == "sandbox" else POLAR_PRODUCTION_URL


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    invoice: InvoiceSettings = Field(default_factory=InvoiceSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)

    polar: PolarSettings = Field(default_factory=PolarSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
