"""
用户仓储接口 - 定义数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional
from .entity import User


class UserRepository(ABC):
    """用户仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, user: User) -> User:
        """创建用户（邮箱冲突时抛出 UserAlreadyExistsException）"""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """根据邮箱获取用户（大小写不敏感）"""
        pass

    @abstractmethod
    async def get_by_customer_id(self, customer_id: str) -> Optional[User]:
        """根据 Polar 客户ID获取用户"""
        pass

    @abstractmethod
    async def get_by_subscription_id(self, subscription_id: str) -> Optional[User]:
        """根据订阅ID获取用户"""
        pass

    @abstractmethod
    async def update(self, user: User) -> User:
        """更新用户"""
        pass
