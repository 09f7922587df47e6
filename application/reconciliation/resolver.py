"""
Identifier resolution: pick one canonical user key out of a webhook payload.

Candidates are tried in order:

1. the external customer id set at checkout time (``customer_external_id`` or
   ``external_customer_id``),
2. the event's ``customer_email``,
3. the nested ``customer`` object: ``external_id`` first, then ``email``,
4. the email already stored on the Payment being reconciled.

Users are keyed by email, so a candidate that is not email-shaped is skipped
and the next one is tried. No candidate means no user-side update; the
payment is still recorded.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Optional
import re

from core.logging_config import get_logger
from domain.payment.entity import Payment


logger = get_logger(__name__)

_EMAIL_SHAPE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ResolvedIdentity:
    key: str
    source: str
    name: Optional[str] = None
    customer_id: Optional[str] = None


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    return value or None


def _candidates(data: Any, payment: Optional[Payment]) -> Iterator[tuple[str, Any]]:
    yield "customer_external_id", getattr(data, "customer_external_id", None)
    yield "external_customer_id", getattr(data, "external_customer_id", None)
    yield "customer_email", getattr(data, "customer_email", None)
    customer = getattr(data, "customer", None)
    if customer is not None:
        yield "customer.external_id", customer.external_id
        yield "customer.email", customer.email
    # customer.* events carry the customer as the payload itself
    if getattr(data, "external_id", None) is not None or getattr(data, "email", None) is not None:
        yield "external_id", getattr(data, "external_id", None)
        yield "email", getattr(data, "email", None)
    if payment is not None:
        yield "payment.customer_email", payment.customer_email


def _customer_name(data: Any) -> Optional[str]:
    customer = getattr(data, "customer", None)
    name = getattr(data, "customer_name", None) or (customer.name if customer is not None else None)
    return name or getattr(data, "name", None)


def _customer_id(data: Any, payment: Optional[Payment]) -> Optional[str]:
    customer = getattr(data, "customer", None)
    return (
        getattr(data, "customer_id", None)
        or (customer.id if customer is not None else None)
        or (payment.customer_id if payment is not None else None)
    )


class IdentifierResolver:
    """Stateless; one instance is shared by all deliveries."""

    def resolve(
        self,
        data: Any,
        payment: Optional[Payment] = None,
        *,
        event_type: Optional[str] = None,
    ) -> Optional[ResolvedIdentity]:
        for source, raw in _candidates(data, payment):
            key = _clean(raw)
            if key is None:
                continue
            if not _EMAIL_SHAPE.match(key):
                logger.debug("identity_candidate_skipped", source=source, event_type=event_type)
                continue
            return ResolvedIdentity(
                key=key,
                source=source,
                name=_customer_name(data),
                customer_id=_customer_id(data, payment),
            )

        logger.warning(
            "identity_unresolved",
            event_type=event_type,
            object_id=getattr(data, "id", None),
            checkout_id=payment.checkout_id if payment is not None else None,
        )
        return None
