import pytest

from application.services.side_effects import SideEffectDispatcher
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.events import InvoiceReady, OrderCompleted, PaymentRefunded


async def _seed_payment(uow_factory, **metadata) -> Payment:
    async with uow_factory() as uow:
        return await uow.payment_repository.create(Payment(
            id=None,
            checkout_id="co_1",
            product_id="prod",
            product_name="Pro",
            amount=999,
            status=PaymentStatus.COMPLETED,
            customer_email="a@x.com",
            metadata={"order_id": "ord_1", **metadata},
        ))


@pytest.mark.asyncio
async def test_invoice_requested_once_per_order(uow_factory, gateway, email_sender, store):
    await _seed_payment(uow_factory)
    dispatcher = SideEffectDispatcher(gateway, email_sender, uow_factory)

    await dispatcher.dispatch([OrderCompleted(checkout_id="co_1", order_id="ord_1")])
    await dispatcher.dispatch([OrderCompleted(checkout_id="co_1", order_id="ord_1")])

    assert gateway.count("generate_invoice") == 1
    assert store.payments[1].metadata["invoice_request_status"] == "scheduled"


@pytest.mark.asyncio
async def test_invoice_email_sent_once_with_details(uow_factory, gateway, email_sender, store):
    await _seed_payment(uow_factory)
    dispatcher = SideEffectDispatcher(gateway, email_sender, uow_factory)
    event = InvoiceReady(checkout_id="co_1", order_id="ord_1", customer_name="Ann")

    await dispatcher.dispatch([event])
    await dispatcher.dispatch([event])

    assert len(email_sender.invoices) == 1
    sent = email_sender.invoices[0]
    assert sent.customer_email == "a@x.com"
    assert sent.invoice_url == gateway.invoice_url
    assert sent.amount == 999
    assert sent.currency == "USD"
    assert sent.product_name == "Pro"
    assert sent.customer_name == "Ann"
    assert store.payments[1].metadata["invoice_url"] == gateway.invoice_url
    assert store.payments[1].metadata["invoice_url_issued_at"]


@pytest.mark.asyncio
async def test_invoice_not_ready_sends_nothing(uow_factory, gateway, email_sender, store):
    await _seed_payment(uow_factory)
    gateway.invoice_url = None
    dispatcher = SideEffectDispatcher(gateway, email_sender, uow_factory)

    await dispatcher.dispatch([InvoiceReady(checkout_id="co_1", order_id="ord_1")])

    assert email_sender.invoices == []
    assert "invoice_email_sent_at" not in store.payments[1].metadata


@pytest.mark.asyncio
async def test_refund_email_sent_once_per_refund(uow_factory, gateway, email_sender):
    await _seed_payment(uow_factory)
    dispatcher = SideEffectDispatcher(gateway, email_sender, uow_factory)
    event = PaymentRefunded(checkout_id="co_1", order_id="ord_1", refund_id="ref_1", amount=500, reason="customer_request")

    await dispatcher.dispatch([event])
    await dispatcher.dispatch([event])

    assert len(email_sender.refunds) == 1
    assert email_sender.refunds[0].refund_amount == 500
    assert email_sender.refunds[0].refund_reason == "customer_request"


@pytest.mark.asyncio
async def test_failures_are_swallowed(uow_factory, gateway, email_sender):
    await _seed_payment(uow_factory)
    gateway.fail_with = RuntimeError("boom")
    dispatcher = SideEffectDispatcher(gateway, email_sender, uow_factory)

    await dispatcher.dispatch([
        OrderCompleted(checkout_id="co_1", order_id="ord_1"),
        PaymentRefunded(checkout_id="co_1", order_id="ord_1", refund_id="ref_1", amount=1),
    ])

    # the refund email still goes out after the invoice call failed
    assert len(email_sender.refunds) == 1


@pytest.mark.asyncio
async def test_without_gateway_invoice_is_skipped(uow_factory, email_sender, store):
    await _seed_payment(uow_factory)
    dispatcher = SideEffectDispatcher(None, email_sender, uow_factory)
    await dispatcher.dispatch([OrderCompleted(checkout_id="co_1", order_id="ord_1")])
    assert "invoice_requested_at" not in store.payments[1].metadata


@pytest.mark.asyncio
async def test_polar_calls_run_outside_write_transactions(uow_factory, gateway, email_sender, store):
    await _seed_payment(uow_factory)
    open_writes = []

    class TrackedUnitOfWork:
        def __init__(self, readonly: bool = False):
            self.readonly = readonly
            self.inner = uow_factory(readonly=readonly)

        async def __aenter__(self):
            if not self.readonly:
                open_writes.append(self)
            return await self.inner.__aenter__()

        async def __aexit__(self, *exc_info):
            if not self.readonly:
                open_writes.remove(self)
            return await self.inner.__aexit__(*exc_info)

    writes_during_call = []
    generate_invoice, get_invoice = gateway.generate_invoice, gateway.get_invoice

    async def tracked_generate(order_id):
        writes_during_call.append(len(open_writes))
        return await generate_invoice(order_id)

    async def tracked_get(order_id):
        writes_during_call.append(len(open_writes))
        return await get_invoice(order_id)

    gateway.generate_invoice = tracked_generate
    gateway.get_invoice = tracked_get
    dispatcher = SideEffectDispatcher(gateway, email_sender, TrackedUnitOfWork)

    await dispatcher.dispatch([
        OrderCompleted(checkout_id="co_1", order_id="ord_1"),
        InvoiceReady(checkout_id="co_1", order_id="ord_1"),
    ])

    assert writes_during_call == [0, 0]
    metadata = store.payments[1].metadata
    assert metadata["invoice_requested_at"]
    assert metadata["invoice_email_sent_at"]
    assert len(email_sender.invoices) == 1
