from datetime import datetime, timezone

import pytest

from application.dtos.payments import CreateCheckout, CreateRefund
from application.services.payment_query_service import PaymentQueryService
from application.services.payment_service import PaymentService
from domain.common.exceptions import (
    DomainValidationException,
    InvoiceNotReadyException,
    PaymentNotFoundException,
)
from domain.payment.entity import Payment, PaymentStatus


class _Clock:
    def __init__(self):
        self.sleeps = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


async def _seed(uow_factory, **metadata) -> Payment:
    async with uow_factory() as uow:
        return await uow.payment_repository.create(Payment(
            id=None,
            checkout_id="co_1",
            product_id=None,
            amount=999,
            status=PaymentStatus.COMPLETED,
            customer_email="a@x.com",
            metadata=metadata,
        ))


@pytest.mark.asyncio
async def test_invoice_url_polls_twice_then_gives_up(uow_factory, gateway):
    payment = await _seed(uow_factory, order_id="ord_1")
    gateway.invoice_url = None
    clock = _Clock()
    queries = PaymentQueryService(uow_factory, gateway, invoice_retry_delay=3.0, sleep=clock.sleep)

    with pytest.raises(InvoiceNotReadyException):
        await queries.get_invoice_url(payment.id)

    assert gateway.count("generate_invoice") == 1
    assert gateway.count("get_invoice") == 2
    assert clock.sleeps == [3.0, 3.0]


@pytest.mark.asyncio
async def test_invoice_url_returned_once_ready(uow_factory, gateway):
    payment = await _seed(uow_factory, order_id="ord_1")
    clock = _Clock()
    queries = PaymentQueryService(uow_factory, gateway, sleep=clock.sleep)

    invoice = await queries.get_invoice_url(payment.id)

    assert invoice.url == gateway.invoice_url
    assert invoice.order_id == "ord_1"
    assert len(clock.sleeps) == 1


@pytest.mark.asyncio
async def test_fresh_cached_invoice_url_skips_polar(uow_factory, gateway):
    payment = await _seed(
        uow_factory,
        order_id="ord_1",
        invoice_url="https://cached/inv.pdf",
        invoice_url_issued_at="2025-01-01T12:00:00+00:00",
    )
    queries = PaymentQueryService(
        uow_factory, gateway, sleep=_Clock().sleep, clock=lambda: datetime(2025, 1, 1, 12, 5, tzinfo=timezone.utc)
    )

    invoice = await queries.get_invoice_url(payment.id)

    assert invoice.url == "https://cached/inv.pdf"
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_expired_cached_invoice_url_is_fetched_again(uow_factory, gateway):
    payment = await _seed(
        uow_factory,
        order_id="ord_1",
        invoice_url="https://cached/inv.pdf",
        invoice_url_issued_at="2025-01-01T12:00:00+00:00",
    )
    queries = PaymentQueryService(
        uow_factory, gateway, sleep=_Clock().sleep, clock=lambda: datetime(2025, 1, 1, 12, 10, tzinfo=timezone.utc)
    )

    invoice = await queries.get_invoice_url(payment.id)

    assert invoice.url == gateway.invoice_url
    assert gateway.count("get_invoice") == 1


@pytest.mark.asyncio
async def test_cached_invoice_url_without_issue_time_is_not_trusted(uow_factory, gateway):
    payment = await _seed(uow_factory, order_id="ord_1", invoice_url="https://cached/inv.pdf")
    queries = PaymentQueryService(uow_factory, gateway, sleep=_Clock().sleep)

    invoice = await queries.get_invoice_url(payment.id)

    assert invoice.url == gateway.invoice_url
    assert gateway.count("generate_invoice") == 1


@pytest.mark.asyncio
async def test_invoice_url_errors(uow_factory, gateway):
    payment = await _seed(uow_factory)
    queries = PaymentQueryService(uow_factory, gateway, sleep=_Clock().sleep)

    with pytest.raises(PaymentNotFoundException):
        await queries.get_invoice_url(404)
    with pytest.raises(InvoiceNotReadyException):
        await queries.get_invoice_url(payment.id)


@pytest.mark.asyncio
async def test_list_by_email_rejects_unknown_status(uow_factory):
    with pytest.raises(DomainValidationException):
        await PaymentQueryService(uow_factory).list_by_email("a@x.com", status="paid")


@pytest.mark.asyncio
async def test_checkout_gets_default_success_url(gateway):
    seen = []

    async def create_checkout(req):
        seen.append(req)
        return await type(gateway).create_checkout(gateway, req)

    gateway.create_checkout = create_checkout
    service = PaymentService(gateway, default_success_url="https://app.example/ok?checkout_id={CHECKOUT_ID}")

    session = await service.create_checkout(CreateCheckout(product_id="prod_pro"))

    assert session.id == "chk_new"
    assert seen[0].success_url == "https://app.example/ok?checkout_id={CHECKOUT_ID}"


@pytest.mark.asyncio
async def test_get_invoice_not_ready_raises(gateway):
    gateway.invoice_url = None
    with pytest.raises(InvoiceNotReadyException):
        await PaymentService(gateway).get_invoice("ord_1")


@pytest.mark.asyncio
async def test_refund_passes_through(gateway):
    result = await PaymentService(gateway).refund(CreateRefund(order_id="ord_1", reason="duplicate", amount=100))
    assert result.id == "ref_new"
    assert gateway.count("create_refund") == 1


def test_refund_reason_is_validated():
    with pytest.raises(ValueError):
        CreateRefund(order_id="ord_1", reason="because", amount=100)
