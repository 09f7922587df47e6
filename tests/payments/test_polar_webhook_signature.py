import json
import time

import pytest

from application.dtos.webhooks import CheckoutEvent, UnknownEvent
from core.settings import PaymentSettings, PolarSettings
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.exceptions import PaymentConfigurationError, PaymentSignatureError
from infrastructure.external.payments.polar_client import PolarClient

from tests.conftest import WEBHOOK_SECRET, sign_webhook


def _client(secret=WEBHOOK_SECRET) -> PolarClient:
    return PolarClient(PaymentSettings(polar=PolarSettings(webhook_secret=secret, access_token="tok")))


BODY = json.dumps({"type": "checkout.created", "data": {"id": "co_1", "customerEmail": "a@x.com"}}).encode()


def test_valid_signature_parses_typed_event():
    envelope = _client().parse_webhook(sign_webhook(BODY, msg_id="msg_42"), BODY)
    assert envelope.webhook_id == "msg_42"
    assert isinstance(envelope.event, CheckoutEvent)
    assert envelope.event.data.customer_email == "a@x.com"


def test_header_names_are_case_insensitive():
    headers = {k.title(): v for k, v in sign_webhook(BODY).items()}
    assert _client().parse_webhook(headers, BODY).type == "checkout.created"


def test_tampered_body_is_rejected():
    headers = sign_webhook(BODY)
    with pytest.raises(PaymentSignatureError):
        _client().parse_webhook(headers, BODY.replace(b"a@x.com", b"b@x.com"))


def test_wrong_secret_is_rejected():
    headers = sign_webhook(BODY, secret="other-secret")
    with pytest.raises(PaymentSignatureError):
        _client().parse_webhook(headers, BODY)


def test_missing_headers_are_rejected():
    with pytest.raises(PaymentSignatureError):
        _client().parse_webhook({"content-type": "application/json"}, BODY)


def test_stale_timestamp_is_rejected():
    headers = sign_webhook(BODY, timestamp=int(time.time()) - 3600)
    with pytest.raises(PaymentSignatureError):
        _client().parse_webhook(headers, BODY)


def test_missing_secret_is_configuration_error():
    with pytest.raises(PaymentConfigurationError):
        _client(secret=None).parse_webhook(sign_webhook(BODY), BODY)


def test_signed_non_object_body_is_rejected():
    body = b"[1, 2, 3]"
    with pytest.raises(PaymentSignatureError):
        _client().parse_webhook(sign_webhook(body), body)


def test_unknown_event_type_is_accepted():
    body = json.dumps({"type": "benefit_grant.created", "data": {"id": "bg_1"}}).encode()
    envelope = _client().parse_webhook(sign_webhook(body), body)
    assert isinstance(envelope.event, UnknownEvent)


def test_known_event_with_broken_shape_is_validation_error():
    body = json.dumps({"type": "order.paid", "data": {"amount": 10}}).encode()
    with pytest.raises(DomainValidationException):
        _client().parse_webhook(sign_webhook(body), body)
