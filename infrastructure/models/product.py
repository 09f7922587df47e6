"""
产品数据库模型 - Polar 产品目录
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON
from datetime import datetime, timezone

from .base import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    polar_product_id = Column(String(100), unique=True, index=True, nullable=False, comment="Polar 产品ID")
    name = Column(String(100), nullable=False, comment="产品名称")
    tier = Column(String(20), nullable=False, comment="对应订阅等级")
    description = Column(Text, nullable=True, comment="描述")
    price = Column(Integer, nullable=False, default=0, comment="价格（分）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    interval = Column(String(20), nullable=False, default="month", comment="计费周期: month/year/one_time/forever")
    features = Column(JSON, nullable=False, default=list, comment="功能列表")
    highlighted = Column(Boolean, nullable=False, default=False, comment="是否推荐")
    active = Column(Boolean, nullable=False, default=True, index=True, comment="是否上架")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    def __repr__(self):
        return f"<ProductModel(id={self.id}, polar_product_id='{self.polar_product_id}', tier='{self.tier}')>"
