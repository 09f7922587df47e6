"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录（checkout_id 冲突时抛出 PaymentAlreadyExistsException）"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_by_checkout_id(self, checkout_id: str) -> Optional[Payment]:
        """根据 Polar checkout ID 获取支付"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        """根据 metadata 中保存的 Polar 订单ID获取支付"""
        pass

    @abstractmethod
    async def get_by_subscription_id(self, subscription_id: str) -> Optional[Payment]:
        """根据 metadata 中保存的 Polar 订阅ID获取支付"""
        pass

    @abstractmethod
    async def list_by_email(
        self,
        email: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PaymentStatus] = None
    ) -> List[Payment]:
        """按客户邮箱获取支付列表（创建时间倒序）"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass
