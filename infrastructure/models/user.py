"""
用户数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    """
    用户数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.user.entity.User 中
    """
    __tablename__ = "users"

    # 主键
    id = Column(Integer, primary_key=True, index=True)

    # 用户基本信息
    email = Column(String(255), unique=True, index=True, nullable=False, comment="邮箱（小写）")
    name = Column(String(200), nullable=True, comment="姓名")

    # Polar 关联
    polar_customer_id = Column(String(100), unique=True, nullable=True, comment="Polar 客户ID")

    # 订阅信息
    subscription_tier = Column(String(20), default="free", nullable=False, comment="订阅等级: free/pro/enterprise")
    subscription_id = Column(String(100), nullable=True, index=True, comment="Polar 订阅ID")
    subscription_ends_at = Column(DateTime(timezone=True), nullable=True, comment="订阅到期时间")

    # 关联支付ID（有序、不重复）
    payment_ids = Column(JSON, nullable=False, default=list, comment="关联支付ID列表")

    # 时间信息
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
        return f"<UserModel(id={self.id}, email='{self.email}', tier='{self.subscription_tier}')>"
