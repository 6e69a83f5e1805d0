"""
支付记录数据库操作层
"""

from typing import Optional, Dict, Any
from datetime import datetime
from decimal import Decimal
import uuid

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment, PaymentStatus
from app.models.database.payment_db import PaymentDB
from app.utils.datetime_utils import utc_now, ensure_utc


class PaymentRepository:
    """支付记录数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_order_id(self, order_id: str) -> Optional[PaymentDB]:
        """根据内部订单号获取支付记录"""
        result = await self.db.execute(
            select(PaymentDB)
            .where(PaymentDB.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_pending_payment(
        self,
        order_id: str,
        user_id: str,
        amount_inr: Decimal,
        discount_amount: Decimal,
        final_amount: Decimal,
        currency: str,
        razorpay_order_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None
    ) -> PaymentDB:
        """创建待支付记录"""
        now = utc_now()
        db_payment = PaymentDB(
            id=str(uuid.uuid4()),
            order_id=order_id,
            user_id=user_id,
            amount_inr=amount_inr,
            discount_amount=discount_amount,
            final_amount=final_amount,
            currency=currency,
            status=PaymentStatus.PENDING.value,
            payment_gateway="razorpay",
            razorpay_order_id=razorpay_order_id,
            payment_metadata=metadata or {},
            created_at=now,
            updated_at=now
        )
        self.db.add(db_payment)
        await self.db.flush()
        return db_payment

    async def mark_success_if_pending(
        self,
        order_id: str,
        razorpay_order_id: str,
        razorpay_payment_id: str,
        completed_at: Optional[datetime] = None
    ) -> bool:
        """
        仅当支付记录仍为 pending 时标记为 success

        返回 False 表示记录不存在或已被处理过，completed_at 不会被重复写入。
        """
        completed_at = completed_at or utc_now()
        result = await self.db.execute(
            update(PaymentDB)
            .where(
                and_(
                    PaymentDB.order_id == order_id,
                    PaymentDB.status == PaymentStatus.PENDING.value
                )
            )
            .values(
                status=PaymentStatus.SUCCESS.value,
                razorpay_order_id=razorpay_order_id,
                razorpay_payment_id=razorpay_payment_id,
                completed_at=completed_at,
                updated_at=completed_at
            )
        )
        return result.rowcount > 0

    async def mark_failed_if_pending(self, order_id: str) -> bool:
        """仅当支付记录仍为 pending 时标记为 failed"""
        result = await self.db.execute(
            update(PaymentDB)
            .where(
                and_(
                    PaymentDB.order_id == order_id,
                    PaymentDB.status == PaymentStatus.PENDING.value
                )
            )
            .values(status=PaymentStatus.FAILED.value, updated_at=utc_now())
        )
        return result.rowcount > 0

    def to_model(self, db_payment: PaymentDB) -> Payment:
        """转换为Pydantic模型"""
        return Payment(
            id=db_payment.id,
            order_id=db_payment.order_id,
            user_id=db_payment.user_id,
            amount_inr=db_payment.amount_inr,
            discount_amount=db_payment.discount_amount or Decimal("0"),
            final_amount=db_payment.final_amount,
            currency=db_payment.currency or "INR",
            status=db_payment.status,
            payment_gateway=db_payment.payment_gateway or "razorpay",
            razorpay_order_id=db_payment.razorpay_order_id,
            razorpay_payment_id=db_payment.razorpay_payment_id,
            metadata=db_payment.payment_metadata or {},
            created_at=ensure_utc(db_payment.created_at),
            updated_at=ensure_utc(db_payment.updated_at),
            completed_at=ensure_utc(db_payment.completed_at)
        )
