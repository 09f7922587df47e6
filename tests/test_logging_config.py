from core.logging_config import redact_secrets


def test_secrets_are_masked_top_level_and_in_headers():
    event = redact_secrets(None, "info", {
        "event": "provider_response",
        "access_token": "polar_oat_123",
        "headers": {"Authorization": "Bearer polar_oat_123", "webhook-id": "msg_1"},
        "order_id": "ord_1",
    })
    assert event["access_token"] == "***"
    assert event["headers"] == {"Authorization": "***", "webhook-id": "msg_1"}
    assert event["order_id"] == "ord_1"


def test_empty_values_are_left_alone():
    event = redact_secrets(None, "info", {"event": "x", "webhook_secret": None})
    assert event["webhook_secret"] is None
