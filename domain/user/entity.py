"""
用户领域实体 - 包含订阅等级相关的业务规则
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from dataclasses import dataclass, field
import re

from domain.common.exceptions import DomainValidationException


class SubscriptionTier(str, Enum):
    """订阅等级"""
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


_EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def normalize_email(email: str) -> str:
    """邮箱统一去空格并小写"""
    return (email or "").strip().lower()


@dataclass
class User:
    """用户实体 - 领域核心"""

    id: Optional[int]
    email: str
    name: Optional[str] = None
    polar_customer_id: Optional[str] = None
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    subscription_id: Optional[str] = None
    subscription_ends_at: Optional[datetime] = None
    payment_ids: List[int] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后的业务规则验证"""
        self.email = normalize_email(self.email)
        self.validate_email()
        if self.payment_ids is None:
            self.payment_ids = []

    def validate_email(self) -> None:
        """业务规则：邮箱格式验证"""
        if not _EMAIL_PATTERN.match(self.email):
            raise DomainValidationException(f"无效的邮箱格式: {self.email}", field="email")

    def link_customer(self, customer_id: Optional[str] = None, name: Optional[str] = None) -> bool:
        """
        业务规则：关联 Polar 客户ID

        仅在当前为空时写入，不覆盖已有值；返回是否有变化
        """
        changed = False
        if customer_id and not self.polar_customer_id:
            self.polar_customer_id = customer_id
            changed = True
        if name and not self.name:
            self.name = name
            changed = True
        if changed:
            self.touch()
        return changed

    def apply_tier(self, tier: SubscriptionTier) -> bool:
        """业务规则：更新订阅等级"""
        if self.subscription_tier == tier:
            return False
        self.subscription_tier = tier
        self.touch()
        return True

    def grant_subscription(
        self,
        tier: Optional[SubscriptionTier],
        subscription_id: Optional[str],
        ends_at: Optional[datetime] = None,
    ) -> None:
        """业务规则：授予订阅（等级可能未知，此时只记录订阅信息）"""
        if tier is not None:
            self.subscription_tier = tier
        if subscription_id:
            self.subscription_id = subscription_id
        if ends_at is not None:
            self.subscription_ends_at = ends_at
        self.touch()

    def revoke_subscription(self) -> None:
        """业务规则：撤销订阅，无条件回到 free"""
        self.subscription_tier = SubscriptionTier.FREE
        self.subscription_id = None
        self.subscription_ends_at = None
        self.touch()

    def attach_payment(self, payment_id: Optional[int]) -> bool:
        """业务规则：同一笔支付只关联一次"""
        if payment_id is None or payment_id in self.payment_ids:
            return False
        self.payment_ids = [*self.payment_ids, payment_id]
        self.touch()
        return True

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
