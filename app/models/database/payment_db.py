"""
支付相关数据库模型
"""

from sqlalchemy import Column, String, Numeric, DateTime, JSON
from sqlalchemy.sql import func
from app.core.database import Base


class PaymentDB(Base):
    """支付记录数据库表"""

    __tablename__ = "payments"

    # 主键和关联信息
    id = Column(String(50), primary_key=True, comment="支付记录ID")
    order_id = Column(String(64), nullable=False, unique=True, index=True, comment="内部订单号")
    user_id = Column(String(64), nullable=False, index=True, comment="用户ID")

    # 金额信息
    amount_inr = Column(Numeric(12, 2), nullable=False, comment="原始金额")
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0, comment="折扣金额")
    final_amount = Column(Numeric(12, 2), nullable=False, comment="实付金额")
    currency = Column(String(10), nullable=False, default="INR", comment="币种")

    # 支付状态
    status = Column(String(20), nullable=False, default="pending", index=True, comment="支付状态")
    payment_gateway = Column(String(30), nullable=False, default="razorpay", comment="支付网关")
    razorpay_order_id = Column(String(64), index=True, comment="网关订单号")
    razorpay_payment_id = Column(String(64), comment="网关支付流水号")

    # 客户信息、优惠码、课程列表
    payment_metadata = Column("metadata", JSON, comment="附加信息")

    # 时间戳
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), comment="更新时间")
    completed_at = Column(DateTime(timezone=True), comment="支付完成时间")

    __table_args__ = (
        {'comment': '支付记录表'}
    )
