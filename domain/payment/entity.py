"""
支付领域实体 - 支付聚合根

一个 checkout 对应一条 Payment；同一用户多次下单会产生多条记录（用于放弃率统计）。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateTransitionException,
)


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"       # checkout 已创建，尚未完成
    COMPLETED = "completed"   # 订单已创建/已支付
    FAILED = "failed"         # checkout 失败（终态）
    REFUNDED = "refunded"     # 已退款（终态）


class DiscountType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


# 允许的状态转换；同状态转换视为幂等
_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.REFUNDED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


@dataclass
class Payment:
    """
    支付聚合根 - 管理一次 checkout 的生命周期

    业务规则：
    1. checkout_id 全局唯一且不可变
    2. 金额为整数最小货币单位（分），不因退款而改变
    3. 状态单调推进：pending -> completed -> refunded；failed 为 pending 的终态分支
    4. event_type 记录最后一次修改本记录的 Polar 事件
    """

    id: Optional[int]
    checkout_id: str
    product_id: Optional[str]
    amount: int
    currency: str = "USD"
    status: PaymentStatus = PaymentStatus.PENDING
    event_type: str = "checkout.created"

    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    product_name: Optional[str] = None

    # 折扣信息
    discount_code: Optional[str] = None
    discount_id: Optional[str] = None
    discount_amount: Optional[int] = None
    discount_type: Optional[DiscountType] = None
    original_amount: Optional[int] = None

    # 自定义元数据（checkout metadata 透传）
    app_name: Optional[str] = None
    feature_date: Optional[datetime] = None

    metadata: dict = field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        if not self.checkout_id:
            raise DomainValidationException("checkout_id is required", field="checkout_id")
        self._validate_amount()
        self._validate_currency()
        self.customer_email = _normalize_email(self.customer_email)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.feature_date = _ensure_utc(self.feature_date)
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        """业务规则：金额为非负整数（最小货币单位）"""
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise DomainValidationException(
                f"Amount must be an integer number of minor units: {self.amount!r}",
                field="amount",
            )
        if self.amount < 0:
            raise DomainValidationException(f"Amount must not be negative: {self.amount}", field="amount")

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        code = (self.currency or "").upper()
        if len(code) != 3 or not code.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = code

    # ---- 派生属性 ----

    @property
    def order_id(self) -> Optional[str]:
        return self.metadata.get("order_id")

    @property
    def subscription_id(self) -> Optional[str]:
        return self.metadata.get("subscription_id")

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return target == self.status or target in _TRANSITIONS[self.status]

    # ---- 状态转换 ----

    def transition_to(self, target: PaymentStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidStateTransitionException(self.status.value, target.value)
        self.status = target
        self.touch()

    def mark_completed(self) -> None:
        """标记完成（幂等）"""
        self.transition_to(PaymentStatus.COMPLETED)

    def mark_refunded(
        self,
        *,
        refund_id: Optional[str] = None,
        refund_amount: Optional[int] = None,
        reason: Optional[str] = None,
        revoke_benefits: Optional[bool] = None,
        refunded_at: Optional[datetime] = None,
    ) -> None:
        """
        标记退款

        业务规则：退款只记录在 metadata 中，amount 保持原始成交金额
        """
        self.transition_to(PaymentStatus.REFUNDED)
        self.merge_metadata(
            refund_id=refund_id,
            refund_amount=refund_amount,
            refund_reason=reason,
            revoke_benefits=revoke_benefits,
            refunded_at=(refunded_at or datetime.now(timezone.utc)).isoformat(),
        )

    def record_event(self, event_type: str) -> None:
        self.event_type = event_type
        self.touch()

    # ---- 字段合并 ----

    def merge_metadata(self, **values: Any) -> None:
        """合并元数据，忽略 None 值，不删除已有键"""
        if self.metadata is None:
            self.metadata = {}
        merged = dict(self.metadata)
        merged.update({k: v for k, v in values.items() if v is not None})
        self.metadata = merged
        self.touch()

    def link_customer(self, customer_id: Optional[str] = None, email: Optional[str] = None) -> None:
        """仅补充缺失或新出现的客户信息"""
        if customer_id:
            self.customer_id = customer_id
        email = _normalize_email(email)
        if email:
            self.customer_email = email

    def apply_discount(
        self,
        *,
        code: Optional[str] = None,
        discount_id: Optional[str] = None,
        amount: Optional[int] = None,
        discount_type: Optional[DiscountType] = None,
        original_amount: Optional[int] = None,
    ) -> None:
        """合并新出现的折扣字段；缺失字段保留原值"""
        if code:
            self.discount_code = code
        if discount_id:
            self.discount_id = discount_id
        if amount is not None:
            self.discount_amount = amount
        if discount_type is not None:
            self.discount_type = discount_type
        if original_amount is not None:
            self.original_amount = original_amount

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
