"""
用户仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.user.entity import SubscriptionTier, User, normalize_email
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from core.logging_config import get_logger
from domain.common.exceptions import (
    UserAlreadyExistsException,
    UserNotFoundException,
)


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):
    """用户仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        """将数据库模型转换为领域实体"""
        return User(
            id=model.id,
            email=model.email,
            name=model.name,
            polar_customer_id=model.polar_customer_id,
            subscription_tier=SubscriptionTier(model.subscription_tier),
            subscription_id=model.subscription_id,
            subscription_ends_at=model.subscription_ends_at,
            payment_ids=list(model.payment_ids or []),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: User) -> UserModel:
        """将领域实体转换为数据库模型"""
        model = UserModel(
            id=entity.id,
            email=entity.email,
            name=entity.name,
            polar_customer_id=entity.polar_customer_id,
            subscription_tier=entity.subscription_tier.value,
            subscription_id=entity.subscription_id,
            subscription_ends_at=entity.subscription_ends_at,
            payment_ids=list(entity.payment_ids),
        )
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        return model

    async def create(self, user: User) -> User:
        """创建用户"""
        db_user = self._to_model(user)
        try:
            async with self.session.begin_nested():
                self.session.add(db_user)
                await self.session.flush()  # 获取生成的ID
        except IntegrityError as e:
            msg = str(e).lower()
            if "email" in msg:
                logger.warning("create_user_conflict", field="email", email=user.email)
                raise UserAlreadyExistsException(user.email)
            raise
        await self.session.refresh(db_user)
        logger.info("user_created", user_id=db_user.id, email=db_user.email)
        return self._to_entity(db_user)

    async def _get_one(self, *criteria) -> Optional[User]:
        result = await self.session.execute(select(UserModel).where(*criteria).limit(1))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """根据ID获取用户"""
        return await self._get_one(UserModel.id == user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        """根据邮箱获取用户"""
        return await self._get_one(UserModel.email == normalize_email(email))

    async def get_by_customer_id(self, customer_id: str) -> Optional[User]:
        return await self._get_one(UserModel.polar_customer_id == customer_id)

    async def get_by_subscription_id(self, subscription_id: str) -> Optional[User]:
        return await self._get_one(UserModel.subscription_id == subscription_id)

    async def update(self, user: User) -> User:
        """更新用户"""
        result = await self.session.execute(
            select(UserModel).where(UserModel.id == user.id)
        )
        db_user = result.scalar_one_or_none()

        if not db_user:
            raise UserNotFoundException(str(user.id))

        # 更新字段
        db_user.name = user.name
        db_user.polar_customer_id = user.polar_customer_id
        db_user.subscription_tier = user.subscription_tier.value
        db_user.subscription_id = user.subscription_id
        db_user.subscription_ends_at = user.subscription_ends_at
        db_user.payment_ids = list(user.payment_ids)
        if user.updated_at is not None:
            db_user.updated_at = user.updated_at

        await self.session.flush()
        await self.session.refresh(db_user)

        logger.info(
            "user_updated",
            user_id=db_user.id,
            tier=db_user.subscription_tier,
        )

        return self._to_entity(db_user)
