import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_polar_gateway
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from main import app


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_polar_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_checkout_returns_hosted_url(client, gateway):
    resp = client.post("/api/checkout/create", json={"product_id": "prod_pro", "customer_email": "a@x.com"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["code"] == 0
    assert body["data"] == {"id": "chk_new", "url": "https://polar.example/checkout/chk_new"}
    assert gateway.count("create_checkout") == 1


def test_invalid_refund_reason_is_422(client, gateway):
    resp = client.post("/api/refunds/create", json={"order_id": "ord_1", "reason": "because", "amount": 100})
    assert resp.status_code == 422
    assert gateway.count("create_refund") == 0


def test_polar_client_error_status_is_passed_through(client, gateway):
    gateway.fail_with = PaymentProviderError("Amount exceeds order total", provider="polar", http_status=422)

    resp = client.post("/api/refunds/create", json={"order_id": "ord_1", "reason": "other", "amount": 99999})

    assert resp.status_code == 422
    error = resp.json()["error"]
    assert error["type"] == "PaymentProviderError"
    assert error["provider"] == "polar"
    assert error["upstream_status"] == 422


def test_polar_outage_is_503_with_retry_after(client, gateway):
    gateway.fail_with = PaymentRecoverableError("bad gateway", provider="polar", details={"http_status": 502})

    resp = client.post("/api/invoices/generate/ord_1")

    assert resp.status_code == 503
    assert int(resp.headers["retry-after"]) >= 1


def test_invoice_not_ready_is_404_with_retry_after(client, gateway):
    gateway.invoice_url = None

    resp = client.get("/api/invoices/ord_1")

    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "InvoiceNotReady"
    assert "retry-after" in resp.headers


def test_invoice_generation_is_accepted(client):
    resp = client.post("/api/invoices/generate/ord_1")
    assert resp.status_code == 202
    assert resp.json()["data"]["status"] == "scheduled"


def test_without_polar_client_calls_fail_as_configuration_error():
    app.dependency_overrides[get_polar_gateway] = lambda: None
    try:
        resp = TestClient(app).post("/api/checkout/create", json={"product_id": "prod_pro"})
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 500
    assert resp.json()["error"]["type"] == "PaymentConfigurationError"
