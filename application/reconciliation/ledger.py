"""
Payment ledger: pure transition functions ``(current, data) -> LedgerResult``.

Nothing here touches the store. The caller looks the current Payment up (by
checkout, order or subscription id), passes it in, and persists whatever comes
back. The input Payment is never mutated; a changed copy is returned.

Rules shared by every transition:

* ``amount`` is the authoritative post-discount total; the gross amount is
  kept as ``original_amount`` and refunds never touch either.
* Status only moves forward (pending -> completed -> refunded, pending ->
  failed). A refunded payment also keeps its refund ``event_type``.
* Metadata is merged, never replaced.
"""
from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from application.dtos.webhooks import (
    CheckoutData,
    OrderData,
    PricedData,
    RefundData,
    SubscriptionData,
)
from core.logging_config import get_logger
from domain.payment.entity import DiscountType, Payment, PaymentStatus
from domain.payment.events import (
    InvoiceReady,
    OrderCompleted,
    PaymentEvent,
    PaymentRefunded,
)
from shared.codes.payment_codes import CHECKOUT_STATUS_TO_INTERNAL


logger = get_logger(__name__)

SKIP_DUPLICATE = "duplicate"
SKIP_LOOKUP_MISS = "lookup_miss"
SKIP_TERMINAL = "terminal_status"
SKIP_ENDED = "subscription_ended"

# payments.app_name column width
APP_NAME_MAX_LENGTH = 50


@dataclass
class LedgerResult:
    payment: Optional[Payment]
    changed: bool = False
    created: bool = False
    skipped: Optional[str] = None
    events: List[PaymentEvent] = field(default_factory=list)
    # first delivery that completed this order; redeliveries leave it False
    completed_now: bool = False
    # the refund asks for benefits to be revoked and they were not revoked before
    revoke_benefits: bool = False


# ---- helpers ----

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.warning("metadata_datetime_invalid", value=value)
        return None


def _fingerprint(payment: Payment) -> dict:
    snapshot = asdict(payment)
    snapshot.pop("updated_at", None)
    return snapshot


def _app_name(data: Any) -> Optional[str]:
    value = data.metadata.get("app_name")
    if not value:
        return None
    return str(value)[:APP_NAME_MAX_LENGTH]


def _email_of(data: Any) -> Optional[str]:
    customer = getattr(data, "customer", None)
    return getattr(data, "customer_email", None) or (customer.email if customer is not None else None)


def _customer_id_of(data: Any) -> Optional[str]:
    customer = getattr(data, "customer", None)
    return getattr(data, "customer_id", None) or (customer.id if customer is not None else None)


def net_amount(data: PricedData) -> Optional[int]:
    """Net wins over total, total over gross."""
    for value in (data.net_amount, data.total_amount, data.amount):
        if value is not None:
            return value
    return None


def gross_amount(data: PricedData) -> Optional[int]:
    if data.subtotal_amount is not None:
        return data.subtotal_amount
    return data.amount


def discount_fields(data: PricedData) -> dict[str, Any]:
    """
    Top-level ``discount_amount`` is authoritative for the amount saved; the
    nested ``discount`` object contributes code/type/id and only supplies its
    own amount when the top-level field is absent.
    """
    nested = data.discount
    fields: dict[str, Any] = {
        "code": nested.code if nested else None,
        "discount_id": data.discount_id or (nested.id if nested else None),
        "amount": data.discount_amount,
        "discount_type": None,
    }
    if fields["amount"] is None and nested is not None:
        fields["amount"] = nested.amount
    if nested is not None and nested.type:
        try:
            fields["discount_type"] = DiscountType(nested.type)
        except ValueError:
            logger.warning("discount_type_unknown", discount_type=nested.type)
    return fields


def _apply_pricing(payment: Payment, data: PricedData) -> None:
    amount = net_amount(data)
    if amount is not None:
        payment.amount = amount
    gross = gross_amount(data)
    if gross is not None and amount is not None and gross != amount:
        payment.original_amount = gross
    payment.apply_discount(**discount_fields(data))
    if data.currency:
        payment.currency = data.currency.upper()
    if data.product_id and not payment.product_id:
        payment.product_id = data.product_id
    if data.product_name and not payment.product_name:
        payment.product_name = data.product_name


def _stamp(payment: Payment, event_type: str) -> None:
    """Record provenance; a refunded payment keeps its refund event type."""
    if payment.status == PaymentStatus.REFUNDED and not _is_refund_event(event_type):
        return
    payment.record_event(event_type)


def _is_refund_event(event_type: str) -> bool:
    return event_type in ("order.refunded", "refund.created", "refund.updated")


def _result(before: Payment, after: Payment, events: Optional[List[PaymentEvent]] = None) -> LedgerResult:
    changed = _fingerprint(before) != _fingerprint(after)
    return LedgerResult(payment=after, changed=changed, events=events or [])


def _new_payment(data: PricedData, *, checkout_id: str, status: PaymentStatus, event_type: str) -> Payment:
    amount = net_amount(data)
    payment = Payment(
        id=None,
        checkout_id=checkout_id,
        product_id=data.product_id,
        product_name=data.product_name,
        amount=amount if amount is not None else 0,
        currency=(data.currency or "USD").upper(),
        status=status,
        event_type=event_type,
        customer_id=_customer_id_of(data),
        customer_email=_email_of(data),
        app_name=_app_name(data),
        feature_date=_parse_datetime(data.metadata.get("feature_date")),
    )
    gross = gross_amount(data)
    if gross is not None and amount is not None and gross != amount:
        payment.original_amount = gross
    payment.apply_discount(**discount_fields(data))
    now = _now()
    payment.created_at = now
    payment.updated_at = now
    return payment


# ---- checkout ----

def checkout_created(current: Optional[Payment], data: CheckoutData) -> LedgerResult:
    if current is not None:
        return LedgerResult(payment=current, skipped=SKIP_DUPLICATE)

    payment = _new_payment(
        data,
        checkout_id=data.id,
        status=PaymentStatus.PENDING,
        event_type="checkout.created",
    )
    payment.merge_metadata(
        checkout_url=data.url,
        expires_at=_iso(data.expires_at),
        checkout_status=data.status,
    )
    return LedgerResult(payment=payment, changed=True, created=True)


def checkout_updated(current: Optional[Payment], data: CheckoutData) -> LedgerResult:
    if current is None:
        return LedgerResult(payment=None, skipped=SKIP_LOOKUP_MISS)

    payment = copy.deepcopy(current)
    target = CHECKOUT_STATUS_TO_INTERNAL.get(data.status or "")
    if target is not None:
        target_status = PaymentStatus(target)
        if payment.can_transition_to(target_status):
            payment.transition_to(target_status)
        else:
            logger.info(
                "checkout_status_ignored",
                checkout_id=payment.checkout_id,
                current=payment.status.value,
                provider_status=data.status,
            )

    if payment.status != PaymentStatus.REFUNDED:
        _apply_pricing(payment, data)
    payment.link_customer(_customer_id_of(data), _email_of(data))
    if payment.app_name is None:
        payment.app_name = _app_name(data)
    if payment.feature_date is None:
        payment.feature_date = _parse_datetime(data.metadata.get("feature_date"))
    if data.status and payment.metadata.get("checkout_status") != data.status:
        payment.merge_metadata(checkout_status=data.status, checkout_updated_at=_iso(_now()))
    _stamp(payment, "checkout.updated")
    return _result(current, payment)


# ---- order ----

def order_created(current: Optional[Payment], data: OrderData) -> LedgerResult:
    if current is None:
        payment = _new_payment(
            data,
            checkout_id=data.checkout_id or data.id,
            status=PaymentStatus.COMPLETED,
            event_type="order.created",
        )
        payment.merge_metadata(
            order_id=data.id,
            order_created_at=_iso(data.created_at or _now()),
            subscription_id=data.subscription_id,
        )
        return LedgerResult(
            payment=payment,
            changed=True,
            created=True,
            events=[OrderCompleted(checkout_id=payment.checkout_id, order_id=data.id)],
            completed_now=True,
        )

    payment = copy.deepcopy(current)
    events: List[PaymentEvent] = []
    completed_now = False
    if payment.status == PaymentStatus.REFUNDED:
        logger.info("order_created_after_refund", checkout_id=payment.checkout_id, order_id=data.id)
    elif payment.can_transition_to(PaymentStatus.COMPLETED):
        completed_now = current.status != PaymentStatus.COMPLETED or current.order_id != data.id
        payment.mark_completed()
        _apply_pricing(payment, data)
        events.append(OrderCompleted(checkout_id=payment.checkout_id, order_id=data.id))
    else:
        logger.warning(
            "order_created_on_failed_checkout",
            checkout_id=payment.checkout_id,
            order_id=data.id,
        )

    payment.link_customer(_customer_id_of(data), _email_of(data))
    if payment.order_id != data.id:
        payment.merge_metadata(
            order_id=data.id,
            order_created_at=_iso(data.created_at or _now()),
        )
    if data.subscription_id and not payment.subscription_id:
        payment.merge_metadata(subscription_id=data.subscription_id)
    _stamp(payment, "order.created")
    result = _result(current, payment, events)
    result.completed_now = completed_now
    return result


def order_paid(current: Optional[Payment], data: OrderData) -> LedgerResult:
    if current is None:
        return LedgerResult(payment=None, skipped=SKIP_LOOKUP_MISS)
    if not current.can_transition_to(PaymentStatus.COMPLETED):
        return LedgerResult(payment=current, skipped=SKIP_TERMINAL)

    payment = copy.deepcopy(current)
    payment.mark_completed()
    if "paid_at" not in payment.metadata:
        payment.merge_metadata(paid_at=_iso(_now()))
    _stamp(payment, "order.paid")
    result = _result(current, payment)
    result.completed_now = current.status != PaymentStatus.COMPLETED or "paid_at" not in current.metadata
    result.events.append(OrderCompleted(checkout_id=payment.checkout_id, order_id=data.id))
    return result


def order_updated(current: Optional[Payment], data: OrderData) -> LedgerResult:
    if current is None:
        return LedgerResult(payment=None, skipped=SKIP_LOOKUP_MISS)

    payment = copy.deepcopy(current)
    payment.merge_metadata(order_status=data.status, is_invoice_generated=data.is_invoice_generated)
    events: List[PaymentEvent] = []
    if data.is_invoice_generated:
        if "invoice_generated_at" not in payment.metadata:
            payment.merge_metadata(invoice_generated_at=_iso(_now()))
        if "invoice_email_sent_at" not in payment.metadata:
            events.append(InvoiceReady(checkout_id=payment.checkout_id, order_id=data.id))
    _stamp(payment, "order.updated")
    return _result(current, payment, events)


# ---- refunds ----

def _refund(
    current: Optional[Payment],
    *,
    event_type: str,
    order_id: Optional[str],
    refund_id: Optional[str],
    amount: Optional[int],
    reason: Optional[str],
    revoke_benefits: bool,
    refunded_at: Optional[datetime],
) -> LedgerResult:
    if current is None:
        return LedgerResult(payment=None, skipped=SKIP_LOOKUP_MISS)
    if not current.can_transition_to(PaymentStatus.REFUNDED):
        return LedgerResult(payment=current, skipped=SKIP_TERMINAL)

    payment = copy.deepcopy(current)
    already = current.status == PaymentStatus.REFUNDED and (
        refund_id is None or current.metadata.get("refund_id") == refund_id
    )
    if already:
        # redelivery; keep the original refund timestamp
        return LedgerResult(payment=current, skipped=SKIP_DUPLICATE)
    if current.status == PaymentStatus.REFUNDED and not current.metadata.get("refund_id"):
        # order.refunded came first; this is the same refund now carrying its id
        revoke_now = revoke_benefits and not current.metadata.get("revoke_benefits")
        payment.merge_metadata(
            refund_id=refund_id,
            refund_amount=None if current.metadata.get("refund_amount") is not None else amount,
            refund_reason=None if current.metadata.get("refund_reason") else reason,
            revoke_benefits=True if revoke_now else None,
        )
        payment.record_event(event_type)
        result = _result(current, payment)
        result.revoke_benefits = revoke_now
        return result

    payment.mark_refunded(
        refund_id=refund_id,
        refund_amount=amount,
        reason=reason,
        revoke_benefits=revoke_benefits,
        refunded_at=refunded_at,
    )
    payment.record_event(event_type)
    event = PaymentRefunded(
        checkout_id=payment.checkout_id,
        order_id=order_id,
        refund_id=refund_id,
        amount=amount,
        reason=reason,
        revoke_benefits=revoke_benefits,
    )
    result = _result(current, payment, [event])
    result.revoke_benefits = revoke_benefits
    return result


def refund_created(current: Optional[Payment], data: RefundData, event_type: str = "refund.created") -> LedgerResult:
    if (data.status or "").lower() in ("failed", "canceled"):
        return LedgerResult(payment=current, skipped=SKIP_TERMINAL)
    return _refund(
        current,
        event_type=event_type,
        order_id=data.order_id,
        refund_id=data.id,
        amount=data.amount,
        reason=data.reason,
        revoke_benefits=bool(data.revoke_benefits),
        refunded_at=data.created_at,
    )


def order_refunded(current: Optional[Payment], data: OrderData) -> LedgerResult:
    return _refund(
        current,
        event_type="order.refunded",
        order_id=data.id,
        refund_id=None,
        amount=data.refunded_amount,
        reason=data.metadata.get("refund_reason"),
        revoke_benefits=bool(data.metadata.get("revoke_benefits", False)),
        refunded_at=None,
    )


# ---- subscriptions ----

def _subscription_metadata(data: SubscriptionData) -> dict[str, Any]:
    return {
        "subscription_id": data.id,
        "subscription_status": data.status,
        "current_period_end": _iso(data.current_period_end),
    }


def subscription_created(current: Optional[Payment], data: SubscriptionData) -> LedgerResult:
    if current is None:
        payment = _new_payment(
            data,
            checkout_id=data.checkout_id or data.id,
            status=PaymentStatus.COMPLETED,
            event_type="subscription.created",
        )
        payment.merge_metadata(**_subscription_metadata(data))
        return LedgerResult(payment=payment, changed=True, created=True)

    if current.subscription_id == data.id and current.metadata.get("canceled_at"):
        # late redelivery of a subscription that has already ended
        return LedgerResult(payment=current, skipped=SKIP_ENDED)

    payment = copy.deepcopy(current)
    if payment.status == PaymentStatus.PENDING:
        payment.mark_completed()
    payment.link_customer(_customer_id_of(data), _email_of(data))
    payment.merge_metadata(**_subscription_metadata(data))
    _stamp(payment, "subscription.created")
    result = _result(current, payment)
    if current.subscription_id == data.id and not result.changed:
        result.skipped = SKIP_DUPLICATE
    return result


def subscription_changed(current: Optional[Payment], data: SubscriptionData, event_type: str) -> LedgerResult:
    """updated / active / uncanceled / canceled / revoked: metadata only, status untouched."""
    if current is None:
        return LedgerResult(payment=None, skipped=SKIP_LOOKUP_MISS)

    payment = copy.deepcopy(current)
    payment.merge_metadata(
        subscription_status=data.status,
        current_period_end=_iso(data.current_period_end),
        ended_at=_iso(data.ended_at),
    )
    if event_type in ("subscription.canceled", "subscription.revoked"):
        if "canceled_at" not in payment.metadata or data.canceled_at is not None:
            payment.merge_metadata(canceled_at=_iso(data.canceled_at or _now()))
    _stamp(payment, event_type)
    return _result(current, payment)
