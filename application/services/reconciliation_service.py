"""
Webhook reconciliation use-case.

One verified event is folded into the Payment ledger and the User projection
inside a single unit of work. Follow-up side effects (invoice, emails) run
only after that transaction has committed, and their failures never reach
the webhook response.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional

from application.dtos.webhooks import (
    CheckoutData,
    CustomerData,
    OrderData,
    PolarEvent,
    RefundData,
    SubscriptionData,
)
from application.reconciliation import ledger
from application.reconciliation.ledger import LedgerResult
from application.reconciliation.projection import UserProjection
from application.reconciliation.resolver import IdentifierResolver, ResolvedIdentity
from application.services.side_effects import SideEffectDispatcher
from core.logging_config import get_logger
from domain.common.exceptions import PaymentAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from domain.payment.events import PaymentEvent
from domain.user.entity import User
from shared.codes.payment_codes import INACTIVE_SUBSCRIPTION_STATUSES


logger = get_logger(__name__)

Lookup = Callable[[], Awaitable[Optional[Payment]]]
Transition = Callable[[Optional[Payment]], LedgerResult]


@dataclass
class ReconciliationOutcome:
    event_type: str
    handled: bool = True
    payment_id: Optional[int] = None
    checkout_id: Optional[str] = None
    created: bool = False
    changed: bool = False
    skipped: Optional[str] = None
    user_id: Optional[int] = None


class ReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        dispatcher: Optional[SideEffectDispatcher] = None,
        resolver: Optional[IdentifierResolver] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher
        self._resolver = resolver or IdentifierResolver()
        self._handlers: dict[str, Callable[..., Awaitable[ReconciliationOutcome]]] = {
            "checkout.created": self._on_checkout_created,
            "checkout.updated": self._on_checkout_updated,
            "order.created": self._on_order_created,
            "order.paid": self._on_order_paid,
            "order.updated": self._on_order_updated,
            "order.refunded": self._on_order_refunded,
            "refund.created": self._on_refund,
            "refund.updated": self._on_refund,
            "subscription.created": self._on_subscription_created,
            "subscription.updated": self._on_subscription_updated,
            "subscription.active": self._on_subscription_updated,
            "subscription.uncanceled": self._on_subscription_updated,
            "subscription.canceled": self._on_subscription_ended,
            "subscription.revoked": self._on_subscription_ended,
            "customer.created": self._on_customer,
            "customer.updated": self._on_customer,
            "customer.state_changed": self._on_customer,
        }

    async def reconcile(self, event: PolarEvent) -> ReconciliationOutcome:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info("webhook_event_ignored", event_type=event.type)
            return ReconciliationOutcome(event_type=event.type, handled=False)

        side_effects: List[PaymentEvent] = []
        async with self._uow_factory() as uow:
            outcome = await handler(uow, event.data, event.type, side_effects)

        logger.info(
            "webhook_reconciled",
            event_type=event.type,
            payment_id=outcome.payment_id,
            checkout_id=outcome.checkout_id,
            created=outcome.created,
            changed=outcome.changed,
            skipped=outcome.skipped,
            user_id=outcome.user_id,
        )

        if side_effects and self._dispatcher is not None:
            await self._dispatcher.dispatch(side_effects)
        return outcome

    # ---- plumbing ----

    async def _apply(
        self,
        uow: AbstractUnitOfWork,
        event_type: str,
        lookup: Lookup,
        transition: Transition,
    ) -> tuple[Optional[Payment], LedgerResult]:
        """Run one ledger transition and persist it; a lost creation race is replayed on the winner."""
        result = transition(await lookup())
        try:
            payment = await self._persist(uow, result)
        except PaymentAlreadyExistsException:
            logger.info("payment_create_race", event_type=event_type)
            result = transition(await lookup())
            payment = await self._persist(uow, result)

        if result.skipped == ledger.SKIP_LOOKUP_MISS:
            logger.warning("payment_lookup_miss", event_type=event_type)
        elif result.skipped is not None:
            logger.info("ledger_transition_skipped", event_type=event_type, reason=result.skipped)
        return payment, result

    @staticmethod
    async def _persist(uow: AbstractUnitOfWork, result: LedgerResult) -> Optional[Payment]:
        if result.payment is None:
            return None
        if result.created:
            return await uow.payment_repository.create(result.payment)
        if result.changed:
            return await uow.payment_repository.update(result.payment)
        return result.payment

    @staticmethod
    def _outcome(event_type: str, payment: Optional[Payment], result: LedgerResult, user: Optional[User] = None) -> ReconciliationOutcome:
        return ReconciliationOutcome(
            event_type=event_type,
            payment_id=payment.id if payment else None,
            checkout_id=payment.checkout_id if payment else None,
            created=result.created,
            changed=result.changed,
            skipped=result.skipped,
            user_id=user.id if user else None,
        )

    @staticmethod
    def _queue(
        side_effects: List[PaymentEvent],
        result: LedgerResult,
        identity: Optional[ResolvedIdentity],
        payment: Optional[Payment],
    ) -> None:
        for evt in result.events:
            evt.customer_email = identity.key if identity else (payment.customer_email if payment else None)
            evt.customer_name = identity.name if identity else None
            side_effects.append(evt)

    # ---- checkout ----

    async def _on_checkout_created(self, uow, data: CheckoutData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_checkout_id(data.id),
            lambda current: ledger.checkout_created(current, data),
        )
        projection = UserProjection(uow)
        identity = self._resolver.resolve(data, payment, event_type=event_type)
        user = await projection.ensure_user(identity)
        if user is not None and payment is not None:
            user = await projection.attach_payment(user, payment.id)
        return self._outcome(event_type, payment, result, user)

    async def _on_checkout_updated(self, uow, data: CheckoutData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_checkout_id(data.id),
            lambda current: ledger.checkout_updated(current, data),
        )
        user = None
        if payment is not None:
            projection = UserProjection(uow)
            identity = self._resolver.resolve(data, payment, event_type=event_type)
            user = await projection.find_user(identity, customer_id=payment.customer_id)
            if user is not None:
                user = await projection.link_customer(user, payment.customer_id, identity.name if identity else None)
                user = await projection.attach_payment(user, payment.id)
        return self._outcome(event_type, payment, result, user)

    # ---- order ----

    async def _on_order_created(self, uow, data: OrderData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository

        async def lookup() -> Optional[Payment]:
            if data.checkout_id:
                found = await repo.get_by_checkout_id(data.checkout_id)
                if found is not None:
                    return found
            return await repo.get_by_order_id(data.id)

        payment, result = await self._apply(
            uow, event_type, lookup, lambda current: ledger.order_created(current, data),
        )
        projection = UserProjection(uow)
        identity = self._resolver.resolve(data, payment, event_type=event_type)
        user = await projection.ensure_user(identity)
        if user is not None and payment is not None:
            if result.completed_now:
                user = await projection.apply_product_tier(user, data.product_id or payment.product_id)
            user = await projection.attach_payment(user, payment.id)
        self._queue(side_effects, result, identity, payment)
        return self._outcome(event_type, payment, result, user)

    async def _on_order_paid(self, uow, data: OrderData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_order_id(data.id),
            lambda current: ledger.order_paid(current, data),
        )
        user = None
        identity = None
        if payment is not None and result.skipped is None:
            projection = UserProjection(uow)
            identity = self._resolver.resolve(data, payment, event_type=event_type)
            user = await projection.find_user(identity, customer_id=payment.customer_id)
            if user is not None:
                if result.completed_now:
                    user = await projection.apply_product_tier(user, data.product_id or payment.product_id)
                user = await projection.attach_payment(user, payment.id)
        self._queue(side_effects, result, identity, payment)
        return self._outcome(event_type, payment, result, user)

    async def _on_order_updated(self, uow, data: OrderData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_order_id(data.id),
            lambda current: ledger.order_updated(current, data),
        )
        identity = self._resolver.resolve(data, payment, event_type=event_type) if result.events else None
        self._queue(side_effects, result, identity, payment)
        return self._outcome(event_type, payment, result)

    async def _on_order_refunded(self, uow, data: OrderData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_order_id(data.id),
            lambda current: ledger.order_refunded(current, data),
        )
        user = await self._after_refund(uow, data, event_type, payment, result, side_effects)
        return self._outcome(event_type, payment, result, user)

    async def _on_refund(self, uow, data: RefundData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository

        async def lookup() -> Optional[Payment]:
            if data.order_id:
                return await repo.get_by_order_id(data.order_id)
            if data.subscription_id:
                return await repo.get_by_subscription_id(data.subscription_id)
            return None

        payment, result = await self._apply(
            uow, event_type, lookup, lambda current: ledger.refund_created(current, data, event_type),
        )
        user = await self._after_refund(uow, data, event_type, payment, result, side_effects)
        return self._outcome(event_type, payment, result, user)

    async def _after_refund(
        self,
        uow: AbstractUnitOfWork,
        data: Any,
        event_type: str,
        payment: Optional[Payment],
        result: LedgerResult,
        side_effects: List[PaymentEvent],
    ) -> Optional[User]:
        if payment is None or not (result.events or result.revoke_benefits):
            return None
        identity = self._resolver.resolve(data, payment, event_type=event_type)
        self._queue(side_effects, result, identity, payment)
        if not result.revoke_benefits:
            return None
        projection = UserProjection(uow)
        user = await projection.find_user(identity, customer_id=payment.customer_id)
        if user is None:
            return None
        return await projection.revoke(user, reason=event_type)

    # ---- subscription ----

    async def _on_subscription_created(self, uow, data: SubscriptionData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository

        async def lookup() -> Optional[Payment]:
            found = await repo.get_by_subscription_id(data.id)
            if found is None and data.checkout_id:
                found = await repo.get_by_checkout_id(data.checkout_id)
            return found

        payment, result = await self._apply(
            uow, event_type, lookup, lambda current: ledger.subscription_created(current, data),
        )
        projection = UserProjection(uow)
        identity = self._resolver.resolve(data, payment, event_type=event_type)
        user = await projection.ensure_user(identity)
        if user is not None:
            # redeliveries must not undo a later plan change or cancellation
            if result.skipped is None:
                user = await projection.grant_subscription(user, data.product_id, data.id, data.current_period_end)
            if payment is not None:
                user = await projection.attach_payment(user, payment.id)
        return self._outcome(event_type, payment, result, user)

    async def _on_subscription_updated(self, uow, data: SubscriptionData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_subscription_id(data.id),
            lambda current: ledger.subscription_changed(current, data, event_type),
        )
        projection = UserProjection(uow)
        identity = self._resolver.resolve(data, payment, event_type=event_type)
        user = await projection.find_user(identity, subscription_id=data.id)
        if user is not None:
            if (data.status or "") in INACTIVE_SUBSCRIPTION_STATUSES:
                user = await projection.revoke(user, reason=f"{event_type}:{data.status}")
            else:
                user = await projection.grant_subscription(user, data.product_id, data.id, data.current_period_end)
        return self._outcome(event_type, payment, result, user)

    async def _on_subscription_ended(self, uow, data: SubscriptionData, event_type: str, side_effects) -> ReconciliationOutcome:
        repo = uow.payment_repository
        payment, result = await self._apply(
            uow, event_type,
            lambda: repo.get_by_subscription_id(data.id),
            lambda current: ledger.subscription_changed(current, data, event_type),
        )
        projection = UserProjection(uow)
        identity = self._resolver.resolve(data, payment, event_type=event_type)
        user = await projection.find_user(identity, subscription_id=data.id)
        if user is not None:
            user = await projection.revoke(user, reason=event_type)
        return self._outcome(event_type, payment, result, user)

    # ---- customer ----

    async def _on_customer(self, uow, data: CustomerData, event_type: str, side_effects) -> ReconciliationOutcome:
        identity = self._resolver.resolve(data, event_type=event_type)
        if identity is not None:
            identity = replace(identity, customer_id=data.id, name=identity.name or data.name)
        user = await UserProjection(uow).ensure_user(identity)
        return ReconciliationOutcome(event_type=event_type, user_id=user.id if user else None)
