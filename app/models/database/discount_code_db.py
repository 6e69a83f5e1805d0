"""
优惠码数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from app.core.database import Base


class DiscountCodeDB(Base):
    """优惠码数据库表"""

    __tablename__ = "discount_codes"

    # 主键和基本信息
    id = Column(String(50), primary_key=True, comment="优惠码ID")
    code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠码（大写存储）")
    description = Column(Text, comment="优惠码描述")
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")

    # 折扣信息（百分比与固定金额二选一）
    discount_percent = Column(Numeric(5, 2), comment="折扣百分比")
    discount_amount = Column(Numeric(10, 2), comment="固定折扣金额")

    # 有效期，空值表示不限
    valid_from = Column(DateTime(timezone=True), comment="有效开始时间")
    valid_until = Column(DateTime(timezone=True), comment="有效结束时间")

    # 使用限制
    max_uses = Column(Integer, comment="总使用次数上限，空值表示不限")
    times_used = Column(Integer, nullable=False, default=0, comment="已使用次数")

    # 适用范围，空值表示适用全部课程
    applicable_courses = Column(JSON, comment="适用课程ID列表")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '优惠码信息表'}
    )
