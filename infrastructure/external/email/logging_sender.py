"""
Email sender that only records what would be sent.

Replace with a real ESP integration (SMTP, Resend, SendGrid) behind the same
EmailSender port; the reconciliation flow does not change.
"""
from __future__ import annotations

from application.ports.notifier import InvoiceEmail, RefundEmail
from core.logging_config import get_logger


logger = get_logger(__name__)


def _format_amount(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency.upper()}"


class LoggingEmailSender:
    def __init__(self, from_address: str = "noreply@example.com", *, enabled: bool = False) -> None:
        self.from_address = from_address
        self.enabled = enabled

    async def send_invoice(self, message: InvoiceEmail) -> None:
        logger.info(
            "invoice_email",
            to=message.customer_email,
            sender=self.from_address,
            subject=f"Invoice for your purchase - Order {message.order_id}",
            invoice_url=message.invoice_url,
            amount=_format_amount(message.amount, message.currency),
            product=message.product_name or "Subscription",
            delivered=False,
            enabled=self.enabled,
        )

    async def send_refund(self, message: RefundEmail) -> None:
        logger.info(
            "refund_email",
            to=message.customer_email,
            sender=self.from_address,
            subject=f"Refund Processed - Order {message.order_id}",
            refund_amount=_format_amount(message.refund_amount, message.currency),
            reason=message.refund_reason.replace("_", " "),
            product=message.product_name or "Subscription",
            delivered=False,
            enabled=self.enabled,
        )
