import json

import httpx
import pytest

from application.dtos.payments import CreateCheckout, CreateRefund
from core.settings import PaymentSettings, PolarSettings, PaymentRetry
from infrastructure.external.payments.exceptions import (
    PaymentConfigurationError,
    PaymentProviderError,
    PaymentRecoverableError,
)
from infrastructure.external.payments.polar_client import PolarClient


def _client(handler, *, token="tok_123", environment="sandbox") -> PolarClient:
    settings = PaymentSettings(
        polar=PolarSettings(access_token=token, environment=environment),
        retry=PaymentRetry(max=0, base_backoff=0.01),
    )
    return PolarClient(settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_create_checkout_posts_products_and_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "co_1", "url": "https://sandbox.polar.sh/checkout/co_1"})

    client = _client(handler)
    session = await client.create_checkout(CreateCheckout(
        product_id="prod_pro",
        success_url="https://app.example/ok",
        customer_email="a@x.com",
        metadata={"app_name": "writer"},
    ))
    await client.aclose()

    assert session.id == "co_1"
    assert seen["url"] == "https://sandbox-api.polar.sh/v1/checkouts/"
    assert seen["auth"] == "Bearer tok_123"
    assert seen["body"] == {
        "products": ["prod_pro"],
        "success_url": "https://app.example/ok",
        "customer_email": "a@x.com",
        "metadata": {"app_name": "writer"},
    }


@pytest.mark.asyncio
async def test_generate_invoice_treats_conflict_as_done():
    responses = iter([httpx.Response(202), httpx.Response(409, json={"detail": "Invoice already exists"})])
    client = _client(lambda request: next(responses))

    assert (await client.generate_invoice("ord_1")).status == "scheduled"
    assert (await client.generate_invoice("ord_1")).status == "already_exists"


@pytest.mark.asyncio
async def test_get_invoice_returns_none_until_ready():
    responses = iter([
        httpx.Response(404, json={"detail": "Not found"}),
        httpx.Response(200, json={"url": "https://polar.example/inv.pdf"}),
    ])
    client = _client(lambda request: next(responses))

    assert await client.get_invoice("ord_1") is None
    link = await client.get_invoice("ord_1")
    assert link.url == "https://polar.example/inv.pdf"


@pytest.mark.asyncio
async def test_refund_and_listing():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            assert body == {"order_id": "ord_1", "reason": "customer_request", "amount": 500, "revoke_benefits": True}
            return httpx.Response(200, json={"id": "ref_1", "order_id": "ord_1", "amount": 500, "status": "pending"})
        assert request.url.params["order_id"] == "ord_1"
        return httpx.Response(200, json={"items": [{"id": "ref_1", "amount": 500}], "pagination": {}})

    client = _client(handler)
    refund = await client.create_refund(CreateRefund(order_id="ord_1", reason="customer_request", amount=500, revoke_benefits=True))
    assert refund.id == "ref_1"
    refunds = await client.list_refunds("ord_1")
    assert [r.id for r in refunds] == ["ref_1"]


@pytest.mark.asyncio
async def test_client_errors_keep_upstream_status():
    client = _client(lambda request: httpx.Response(422, json={"detail": "Amount exceeds order total"}))
    with pytest.raises(PaymentProviderError) as excinfo:
        await client.create_refund(CreateRefund(order_id="ord_1", reason="other", amount=99999))
    assert excinfo.value.http_status == 422
    assert excinfo.value.message == "Amount exceeds order total"


@pytest.mark.asyncio
async def test_server_errors_are_recoverable():
    client = _client(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(PaymentRecoverableError):
        await client.get_checkout("co_1")


@pytest.mark.asyncio
async def test_missing_access_token_is_configuration_error():
    client = _client(lambda request: httpx.Response(200, json={}), token=None)
    with pytest.raises(PaymentConfigurationError):
        await client.generate_invoice("ord_1")
