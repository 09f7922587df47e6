"""
Business codes carried in every error envelope.

`BusinessCode` covers request validation, the ledger and system failures;
Polar-facing codes live in `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Ledger errors (2xxxx)
    USER_NOT_FOUND = 20001
    USER_ALREADY_EXISTS = 20002
    NOT_FOUND = 20006
    PAYMENT_NOT_FOUND = 20101
    PAYMENT_ALREADY_EXISTS = 20102
    INVALID_STATE_TRANSITION = 20103

    UNAUTHORIZED = 30001

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003

    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
