"""
Post-commit side effects of reconciliation.

Each follow-up is guarded by a marker in the Payment metadata so webhook
redeliveries never request a second invoice or send a second email. A failing
side effect is logged and dropped; the ledger stays authoritative.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from application.ports.notifier import EmailSender, InvoiceEmail, RefundEmail
from application.ports.payment_gateway import PolarGateway
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from domain.payment.events import InvoiceReady, OrderCompleted, PaymentEvent, PaymentRefunded


logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SideEffectDispatcher:
    def __init__(
        self,
        gateway: Optional[PolarGateway],
        email_sender: Optional[EmailSender],
        uow_factory: Callable[..., AbstractUnitOfWork],
    ) -> None:
        self._gateway = gateway
        self._email_sender = email_sender
        self._uow_factory = uow_factory

    async def dispatch(self, events: Iterable[PaymentEvent]) -> None:
        for event in events:
            try:
                if isinstance(event, OrderCompleted):
                    await self._request_invoice(event)
                elif isinstance(event, InvoiceReady):
                    await self._send_invoice(event)
                elif isinstance(event, PaymentRefunded):
                    await self._send_refund(event)
            except Exception as exc:
                logger.error(
                    "side_effect_failed",
                    side_effect=type(event).__name__,
                    checkout_id=event.checkout_id,
                    order_id=event.order_id,
                    error=str(exc),
                    exc_info=True,
                )

    @staticmethod
    async def _load(uow: AbstractUnitOfWork, event: PaymentEvent) -> Optional[Payment]:
        payment = None
        if event.order_id:
            payment = await uow.payment_repository.get_by_order_id(event.order_id)
        if payment is None:
            payment = await uow.payment_repository.get_by_checkout_id(event.checkout_id)
        return payment

    async def _read(self, event: PaymentEvent) -> Optional[Payment]:
        async with self._uow_factory(readonly=True) as uow:
            return await self._load(uow, event)

    async def _mark(self, event: PaymentEvent, **markers) -> None:
        """Write follow-up markers in a short transaction of their own."""
        async with self._uow_factory() as uow:
            payment = await self._load(uow, event)
            if payment is None:
                return
            payment.merge_metadata(**markers)
            await uow.payment_repository.update(payment)

    # Provider calls and emails run between _read and _mark, never inside a transaction.

    async def _request_invoice(self, event: OrderCompleted) -> None:
        if self._gateway is None or not event.order_id:
            logger.info("invoice_request_skipped", checkout_id=event.checkout_id, order_id=event.order_id)
            return
        payment = await self._read(event)
        if payment is None or payment.metadata.get("invoice_requested_at"):
            return
        generation = await self._gateway.generate_invoice(event.order_id)
        await self._mark(
            event,
            invoice_requested_at=_now_iso(),
            invoice_request_status=generation.status,
        )
        logger.info("invoice_requested", order_id=event.order_id, status=generation.status)

    async def _send_invoice(self, event: InvoiceReady) -> None:
        if self._gateway is None or self._email_sender is None or not event.order_id:
            logger.info("invoice_email_skipped", checkout_id=event.checkout_id, order_id=event.order_id)
            return
        payment = await self._read(event)
        if payment is None or payment.metadata.get("invoice_email_sent_at"):
            return
        email = event.customer_email or payment.customer_email
        if not email:
            logger.warning("invoice_email_no_recipient", order_id=event.order_id)
            return
        link = await self._gateway.get_invoice(event.order_id)
        if link is None:
            logger.info("invoice_not_ready", order_id=event.order_id)
            return
        issued_at = _now_iso()
        await self._email_sender.send_invoice(
            InvoiceEmail(
                customer_email=email,
                invoice_url=link.url,
                order_id=event.order_id,
                amount=payment.amount,
                currency=payment.currency,
                customer_name=event.customer_name,
                product_name=payment.product_name,
            )
        )
        await self._mark(
            event,
            invoice_email_sent_at=_now_iso(),
            invoice_url=link.url,
            invoice_url_issued_at=issued_at,
        )

    async def _send_refund(self, event: PaymentRefunded) -> None:
        if self._email_sender is None:
            return
        payment = await self._read(event)
        if payment is None:
            return
        marker = event.refund_id or event.order_id or payment.checkout_id
        if payment.metadata.get("refund_email_sent_for") == marker:
            return
        email = event.customer_email or payment.customer_email
        if not email:
            logger.warning("refund_email_no_recipient", checkout_id=payment.checkout_id)
            return
        await self._email_sender.send_refund(
            RefundEmail(
                customer_email=email,
                order_id=event.order_id or payment.order_id or payment.checkout_id,
                refund_amount=event.amount if event.amount is not None else payment.amount,
                currency=payment.currency,
                refund_reason=event.reason or "customer_request",
                customer_name=event.customer_name,
                product_name=payment.product_name,
            )
        )
        await self._mark(event, refund_email_sent_for=marker)
