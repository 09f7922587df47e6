"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # Polar 标识
    checkout_id = Column(String(100), unique=True, index=True, nullable=False, comment="Polar checkout ID")
    # 以下两列从 metadata 中冗余出来，便于按订单/订阅查找
    order_id = Column(String(100), nullable=True, index=True, comment="Polar 订单ID")
    subscription_id = Column(String(100), nullable=True, index=True, comment="Polar 订阅ID")

    # 客户信息
    customer_id = Column(String(100), nullable=True, index=True, comment="Polar 客户ID")
    customer_email = Column(String(255), nullable=True, index=True, comment="客户邮箱（小写）")

    # 产品信息
    product_id = Column(String(100), nullable=True, comment="Polar 产品ID")
    product_name = Column(String(200), nullable=True, comment="产品名称")

    # 金额信息（整数，最小货币单位）
    amount = Column(Integer, nullable=False, default=0, comment="折后金额（分）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/completed/failed/refunded"
    )
    event_type = Column(String(50), nullable=False, comment="最后一次修改该记录的 Polar 事件")

    # 折扣信息
    discount_code = Column(String(100), nullable=True, comment="折扣码")
    discount_id = Column(String(100), nullable=True, comment="Polar 折扣ID")
    discount_amount = Column(Integer, nullable=True, comment="折扣金额（分）")
    discount_type = Column(String(20), nullable=True, comment="折扣类型: fixed/percentage")
    original_amount = Column(Integer, nullable=True, comment="折前金额（分）")

    # checkout 自定义元数据
    app_name = Column(String(50), nullable=True, comment="应用名称")
    feature_date = Column(DateTime(timezone=True), nullable=True, comment="功能日期")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    # 索引
    __table_args__ = (
        Index("ix_payments_email_status", "customer_email", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, checkout_id='{self.checkout_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
