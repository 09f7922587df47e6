"""
User projection: derives tier and identity linkage from ledger transitions.

Works inside the caller's unit of work; nothing is committed here.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from application.reconciliation.resolver import ResolvedIdentity
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, UserAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import SubscriptionTier, User


logger = get_logger(__name__)


class UserProjection:
    def __init__(self, uow: AbstractUnitOfWork) -> None:
        self.uow = uow

    async def find_user(
        self,
        identity: Optional[ResolvedIdentity] = None,
        *,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[User]:
        """按订阅ID、客户ID、邮箱依次查找；不创建"""
        repo = self.uow.user_repository
        if subscription_id:
            user = await repo.get_by_subscription_id(subscription_id)
            if user:
                return user
        if customer_id:
            user = await repo.get_by_customer_id(customer_id)
            if user:
                return user
        if identity is not None:
            return await repo.get_by_email(identity.key)
        return None

    async def ensure_user(self, identity: Optional[ResolvedIdentity]) -> Optional[User]:
        """
        幂等创建：邮箱已存在则复用；并发创建导致的唯一约束冲突会重新读取而不是报错
        """
        if identity is None:
            return None
        repo = self.uow.user_repository
        user = await repo.get_by_email(identity.key)
        if user is None:
            try:
                candidate = User(id=None, email=identity.key, name=identity.name)
            except DomainValidationException:
                logger.warning("identity_not_an_email", source=identity.source)
                return None
            try:
                user = await repo.create(candidate)
                logger.info("user_created_from_webhook", user_id=user.id, source=identity.source)
            except UserAlreadyExistsException:
                user = await repo.get_by_email(identity.key)
                if user is None:
                    raise
        await self.link_customer(user, identity.customer_id, identity.name)
        return user

    async def link_customer(self, user: User, customer_id: Optional[str], name: Optional[str]) -> User:
        if customer_id and user.polar_customer_id is None:
            owner = await self.uow.user_repository.get_by_customer_id(customer_id)
            if owner is not None and owner.id != user.id:
                # polar_customer_id is unique; never steal it from another user
                logger.warning(
                    "customer_id_owned_by_other_user",
                    user_id=user.id,
                    owner_id=owner.id,
                )
                customer_id = None
        if user.link_customer(customer_id, name):
            return await self.uow.user_repository.update(user)
        return user

    async def _tier_for(self, product_id: Optional[str]) -> Optional[SubscriptionTier]:
        if not product_id:
            return None
        product = await self.uow.product_repository.get_by_polar_id(product_id)
        if product is None:
            logger.warning("product_unknown", product_id=product_id)
            return None
        return product.tier

    async def apply_product_tier(self, user: User, product_id: Optional[str]) -> User:
        """等级只来自产品目录；未知产品不改变等级"""
        tier = await self._tier_for(product_id)
        if tier is not None and user.apply_tier(tier):
            logger.info("user_tier_changed", user_id=user.id, tier=tier.value, product_id=product_id)
            return await self.uow.user_repository.update(user)
        return user

    async def grant_subscription(
        self,
        user: User,
        product_id: Optional[str],
        subscription_id: Optional[str],
        ends_at: Optional[datetime],
    ) -> User:
        tier = await self._tier_for(product_id)
        user.grant_subscription(tier, subscription_id, ends_at)
        logger.info(
            "subscription_granted",
            user_id=user.id,
            tier=user.subscription_tier.value,
            subscription_id=subscription_id,
        )
        return await self.uow.user_repository.update(user)

    async def revoke(self, user: User, *, reason: str) -> User:
        user.revoke_subscription()
        logger.info("subscription_revoked", user_id=user.id, reason=reason)
        return await self.uow.user_repository.update(user)

    async def attach_payment(self, user: User, payment_id: Optional[int]) -> User:
        if user.attach_payment(payment_id):
            return await self.uow.user_repository.update(user)
        return user
