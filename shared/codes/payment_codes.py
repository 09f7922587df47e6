"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    CONFIGURATION_ERROR = 60005
    INVOICE_NOT_READY = 60006


# Polar checkout status -> internal payment status.
# Statuses not listed here leave the payment untouched.
CHECKOUT_STATUS_TO_INTERNAL = {
    "confirmed": "completed",
    "succeeded": "completed",
    "failed": "failed",
}

# Polar refund reasons accepted by POST /v1/refunds/
REFUND_REASONS = {
    "duplicate",
    "fraudulent",
    "customer_request",
    "service_disruption",
    "satisfaction_guarantee",
    "other",
}

# Polar subscription statuses after which benefits are gone
INACTIVE_SUBSCRIPTION_STATUSES = {"canceled", "unpaid", "incomplete_expired"}
