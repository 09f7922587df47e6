"""
产品仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.product.entity import BillingInterval, Product
from domain.product.repository import ProductRepository
from domain.user.entity import SubscriptionTier
from infrastructure.models.product import ProductModel


class SQLAlchemyProductRepository(ProductRepository):
    """产品仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            polar_product_id=model.polar_product_id,
            name=model.name,
            tier=SubscriptionTier(model.tier),
            description=model.description,
            price=model.price,
            currency=model.currency,
            interval=BillingInterval(model.interval),
            features=list(model.features or []),
            highlighted=model.highlighted,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_by_polar_id(self, polar_product_id: str) -> Optional[Product]:
        result = await self.session.execute(
            select(ProductModel).where(ProductModel.polar_product_id == polar_product_id)
        )
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None

    async def list_active(self) -> List[Product]:
        result = await self.session.execute(
            select(ProductModel)
            .where(ProductModel.active.is_(True))
            .order_by(ProductModel.price.asc(), ProductModel.id.asc())
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def create(self, product: Product) -> Product:
        db_product = ProductModel(
            polar_product_id=product.polar_product_id,
            name=product.name,
            tier=product.tier.value,
            description=product.description,
            price=product.price,
            currency=product.currency,
            interval=product.interval.value,
            features=list(product.features),
            highlighted=product.highlighted,
            active=product.active,
        )
        self.session.add(db_product)
        await self.session.flush()
        await self.session.refresh(db_product)
        return self._to_entity(db_product)
