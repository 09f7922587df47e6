from application.dtos.webhooks import CheckoutData, CustomerData, OrderData
from application.reconciliation.resolver import IdentifierResolver
from domain.payment.entity import Payment


resolver = IdentifierResolver()


def test_external_customer_id_wins_over_email():
    data = OrderData.model_validate({
        "id": "ord_1",
        "customerExternalId": "Owner@Example.com",
        "customerEmail": "billing@example.com",
    })
    identity = resolver.resolve(data)
    assert identity.key == "owner@example.com"
    assert identity.source == "customer_external_id"


def test_falls_back_to_event_email_when_external_id_is_not_an_email():
    data = OrderData(id="ord_1", external_customer_id="usr_42", customer_email=" Bob@Example.com")
    identity = resolver.resolve(data)
    assert identity.key == "bob@example.com"
    assert identity.source == "customer_email"


def test_nested_customer_object_is_used():
    data = OrderData.model_validate({
        "id": "ord_1",
        "customer": {"id": "cus_1", "email": "carol@example.com", "name": "Carol"},
    })
    identity = resolver.resolve(data)
    assert identity.key == "carol@example.com"
    assert identity.source == "customer.email"
    assert identity.name == "Carol"
    assert identity.customer_id == "cus_1"


def test_stored_payment_email_is_last_resort():
    payment = Payment(id=1, checkout_id="chk_1", product_id=None, amount=0, customer_email="dave@example.com")
    identity = resolver.resolve(CheckoutData(id="chk_1"), payment)
    assert identity.key == "dave@example.com"
    assert identity.source == "payment.customer_email"


def test_customer_payload_resolves_from_its_own_fields():
    identity = resolver.resolve(CustomerData(id="cus_9", email="Erin@Example.com", name="Erin"))
    assert identity.key == "erin@example.com"
    assert identity.name == "Erin"


def test_nothing_resolvable_returns_none():
    assert resolver.resolve(OrderData(id="ord_1", customer_email="   ")) is None
