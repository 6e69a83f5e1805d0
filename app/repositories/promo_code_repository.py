"""
优惠码数据库操作层
"""

from typing import List, Optional, Dict, Any
import uuid

from sqlalchemy import select, update, delete, and_, or_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promo_code import PromoCode, normalize_code
from app.models.database.discount_code_db import DiscountCodeDB
from app.utils.datetime_utils import utc_now, ensure_utc


class PromoCodeRepository:
    """优惠码数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[DiscountCodeDB]:
        """根据优惠码获取记录（大小写不敏感）"""
        result = await self.db.execute(
            select(DiscountCodeDB).where(
                func.upper(DiscountCodeDB.code) == normalize_code(code)
            )
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, promo_code_id: str) -> Optional[DiscountCodeDB]:
        """根据ID获取优惠码"""
        result = await self.db.execute(
            select(DiscountCodeDB).where(DiscountCodeDB.id == promo_code_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self, limit: int = 100, offset: int = 0) -> List[DiscountCodeDB]:
        """按创建时间倒序获取优惠码列表"""
        result = await self.db.execute(
            select(DiscountCodeDB)
            .order_by(desc(DiscountCodeDB.created_at))
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def create(self, data: Dict[str, Any]) -> DiscountCodeDB:
        """创建优惠码"""
        now = utc_now()
        db_promo = DiscountCodeDB(
            id=str(uuid.uuid4()),
            times_used=0,
            created_at=now,
            updated_at=now,
            **data
        )
        self.db.add(db_promo)
        await self.db.flush()
        return db_promo

    async def update(self, promo_code_id: str, data: Dict[str, Any]) -> Optional[DiscountCodeDB]:
        """部分更新优惠码"""
        db_promo = await self.get_by_id(promo_code_id)
        if not db_promo:
            return None

        for field, value in data.items():
            setattr(db_promo, field, value)
        db_promo.updated_at = utc_now()

        await self.db.flush()
        return db_promo

    async def delete(self, promo_code_id: str) -> bool:
        """删除优惠码"""
        result = await self.db.execute(
            delete(DiscountCodeDB).where(DiscountCodeDB.id == promo_code_id)
        )
        return result.rowcount > 0

    async def redeem(self, promo_code_id: str) -> bool:
        """
        原子地使用一次优惠码

        校验与计数在同一条条件UPDATE中完成，并发兑换不会突破使用上限。
        """
        result = await self.db.execute(
            update(DiscountCodeDB)
            .where(
                and_(
                    DiscountCodeDB.id == promo_code_id,
                    DiscountCodeDB.is_active.is_(True),
                    or_(
                        DiscountCodeDB.max_uses.is_(None),
                        DiscountCodeDB.times_used < DiscountCodeDB.max_uses
                    )
                )
            )
            .values(
                times_used=DiscountCodeDB.times_used + 1,
                updated_at=utc_now()
            )
        )
        return result.rowcount > 0

    def to_model(self, db_promo: DiscountCodeDB) -> PromoCode:
        """转换为Pydantic模型"""
        return PromoCode(
            id=db_promo.id,
            code=db_promo.code,
            description=db_promo.description,
            is_active=db_promo.is_active,
            discount_percent=db_promo.discount_percent,
            discount_amount=db_promo.discount_amount,
            valid_from=ensure_utc(db_promo.valid_from),
            valid_until=ensure_utc(db_promo.valid_until),
            max_uses=db_promo.max_uses,
            times_used=db_promo.times_used or 0,
            applicable_courses=db_promo.applicable_courses or None,
            created_at=ensure_utc(db_promo.created_at),
            updated_at=ensure_utc(db_promo.updated_at)
        )
