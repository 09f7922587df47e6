"""SQLAlchemy Unit of Work 实现

一次 webhook 的对账在同一个事务里完成：支付、用户两边的写入要么一起提交，
要么一起回滚。只读 UoW 用于查询接口，退出时总是回滚，不会留下写入。
"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.repositories.payment_repository import SQLAlchemyPaymentRepository
from infrastructure.repositories.product_repository import SQLAlchemyProductRepository
from infrastructure.repositories.user_repository import SQLAlchemyUserRepository


logger = get_logger(__name__)


def _default_session_factory() -> AsyncSession:
    # 延迟导入：测试注入 session_factory 时不创建全局引擎
    from infrastructure.database import AsyncSessionLocal

    return AsyncSessionLocal()


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = _default_session_factory,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._owns_session = session is None
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.payment_repository = SQLAlchemyPaymentRepository(self.session)
        self.user_repository = SQLAlchemyUserRepository(self.session)
        self.product_repository = SQLAlchemyProductRepository(self.session)
        if not self._readonly and not self.session.in_transaction():
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._readonly:
                await self.rollback()
            if self._owns_session and self.session is not None:
                await self.session.close()
                self.session = None
            self.payment_repository = None
            self.user_repository = None
            self.product_repository = None

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            if not self._readonly:
                logger.info("uow_rollback")
            await self.session.rollback()
        self._committed = False
