"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import PaymentAlreadyExistsException, PaymentNotFoundException
from domain.payment.entity import DiscountType, Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            checkout_id=model.checkout_id,
            product_id=model.product_id,
            amount=model.amount,
            currency=model.currency,
            status=PaymentStatus(model.status),
            event_type=model.event_type,
            customer_id=model.customer_id,
            customer_email=model.customer_email,
            product_name=model.product_name,
            discount_code=model.discount_code,
            discount_id=model.discount_id,
            discount_amount=model.discount_amount,
            discount_type=DiscountType(model.discount_type) if model.discount_type else None,
            original_amount=model.original_amount,
            app_name=model.app_name,
            feature_date=model.feature_date,
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        model = PaymentModel(id=entity.id, checkout_id=entity.checkout_id)
        if entity.created_at is not None:
            model.created_at = entity.created_at
        self._apply(model, entity)
        return model

    @staticmethod
    def _apply(model: PaymentModel, entity: Payment) -> None:
        """把实体的可变字段写回模型；order_id/subscription_id 从 metadata 冗余"""
        model.order_id = entity.order_id
        model.subscription_id = entity.subscription_id
        model.customer_id = entity.customer_id
        model.customer_email = entity.customer_email
        model.product_id = entity.product_id
        model.product_name = entity.product_name
        model.amount = entity.amount
        model.currency = entity.currency
        model.status = entity.status.value
        model.event_type = entity.event_type
        model.discount_code = entity.discount_code
        model.discount_id = entity.discount_id
        model.discount_amount = entity.discount_amount
        model.discount_type = entity.discount_type.value if entity.discount_type else None
        model.original_amount = entity.original_amount
        model.app_name = entity.app_name
        model.feature_date = entity.feature_date
        # 赋新 dict，保证 JSON 列被识别为已修改
        model.extra_metadata = dict(entity.metadata or {})
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        try:
            # 使用 SAVEPOINT，冲突时只回滚本次插入，不影响外层事务
            async with self.session.begin_nested():
                self.session.add(db_payment)
                await self.session.flush()
        except IntegrityError as e:
            msg = str(e).lower()
            if "checkout_id" in msg or "unique" in msg:
                logger.warning("payment_create_conflict", checkout_id=payment.checkout_id)
                raise PaymentAlreadyExistsException(payment.checkout_id)
            raise
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            checkout_id=db_payment.checkout_id,
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def _get_one(self, *criteria) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel).where(*criteria).order_by(PaymentModel.id.desc()).limit(1)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """根据ID获取支付"""
        return await self._get_one(PaymentModel.id == payment_id)

    async def get_by_checkout_id(self, checkout_id: str) -> Optional[Payment]:
        """根据 checkout ID 获取支付"""
        return await self._get_one(PaymentModel.checkout_id == checkout_id)

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        """根据订单ID获取支付"""
        return await self._get_one(PaymentModel.order_id == order_id)

    async def get_by_subscription_id(self, subscription_id: str) -> Optional[Payment]:
        """根据订阅ID获取支付（同一订阅取最新一条）"""
        return await self._get_one(PaymentModel.subscription_id == subscription_id)

    async def list_by_email(
        self,
        email: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PaymentStatus] = None
    ) -> List[Payment]:
        """获取客户邮箱下的支付列表"""
        query = select(PaymentModel).where(PaymentModel.customer_email == email.strip().lower())

        if status:
            query = query.where(PaymentModel.status == status.value)

        query = (
            query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
            .offset(skip)
            .limit(limit)
        )

        result = await self.session.execute(query)
        db_payments = result.scalars().all()
        return [self._to_entity(p) for p in db_payments]

    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.id == payment.id)
        )
        db_payment = result.scalar_one_or_none()

        if not db_payment:
            raise PaymentNotFoundException(str(payment.id))

        self._apply(db_payment, payment)

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            checkout_id=db_payment.checkout_id,
            status=db_payment.status,
            event_type=db_payment.event_type,
        )

        return self._to_entity(db_payment)
