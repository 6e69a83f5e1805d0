"""
优惠码业务服务层
提供优惠码校验、折扣计算以及后台管理相关的业务逻辑
"""

import logging
from typing import List, Optional
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from app.api.exceptions import (
    BusinessException,
    DuplicatePromoCodeError,
    PromoCodeNotFoundError,
    PromoCodeRequiredError
)
from app.core.database import run_store_operation
from app.models.promo_code import (
    PromoCode,
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoCodeValidation,
    PromoCodeMessage
)
from app.repositories.promo_code_repository import PromoCodeRepository
from app.services.common_cache import promo_cache
from app.utils.datetime_utils import utc_now, ensure_utc

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class PromoCodeService:
    """优惠码业务服务"""

    def __init__(self, promo_repo: PromoCodeRepository):
        self.promo_repo = promo_repo
        self.cache = promo_cache
        self.cache_ttl = 1800  # 30分钟缓存

    async def validate_promo_code(
        self,
        code: Optional[str],
        course_id: Optional[str] = None,
        current_time: Optional[datetime] = None
    ) -> PromoCodeValidation:
        """
        校验优惠码

        校验顺序：存在 -> 启用 -> 开始时间 -> 结束时间 -> 使用次数 -> 适用课程，
        只返回第一个未通过项的提示。只读操作，不使用缓存，不增加使用次数。
        """
        if code is None or not str(code).strip():
            raise PromoCodeRequiredError(PromoCodeMessage.REQUIRED)

        db_promo = await run_store_operation(self.promo_repo.get_by_code(str(code)))
        if not db_promo:
            return PromoCodeValidation.rejected(PromoCodeMessage.INVALID)

        promo_code = self.promo_repo.to_model(db_promo)
        return self.evaluate(promo_code, course_id, current_time)

    @staticmethod
    def evaluate(
        promo_code: PromoCode,
        course_id: Optional[str] = None,
        current_time: Optional[datetime] = None
    ) -> PromoCodeValidation:
        """按业务规则判定已查到的优惠码是否可用"""
        now = ensure_utc(current_time) or utc_now()

        if not promo_code.is_active:
            return PromoCodeValidation.rejected(PromoCodeMessage.INACTIVE)

        valid_from = ensure_utc(promo_code.valid_from)
        if valid_from and now < valid_from:
            return PromoCodeValidation.rejected(PromoCodeMessage.NOT_YET_VALID)

        valid_until = ensure_utc(promo_code.valid_until)
        if valid_until and now > valid_until:
            return PromoCodeValidation.rejected(PromoCodeMessage.EXPIRED)

        if promo_code.max_uses is not None and promo_code.times_used >= promo_code.max_uses:
            return PromoCodeValidation.rejected(PromoCodeMessage.USAGE_LIMIT)

        if not promo_code.is_applicable_to_course(course_id):
            return PromoCodeValidation.rejected(PromoCodeMessage.NOT_APPLICABLE)

        return PromoCodeValidation.accepted(promo_code)

    @staticmethod
    def calculate_discount(
        amount: Decimal,
        discount_percent: Optional[Decimal] = None,
        discount_amount: Optional[Decimal] = None
    ) -> Decimal:
        """计算折扣金额，百分比优先，折扣不超过订单金额"""
        amount = Decimal(amount)
        if discount_percent:
            discount = amount * Decimal(discount_percent) / Decimal("100")
        elif discount_amount:
            discount = Decimal(discount_amount)
        else:
            discount = Decimal("0")

        discount = min(max(discount, Decimal("0")), amount)
        return discount.quantize(CENT, rounding=ROUND_HALF_UP)

    async def redeem_promo_code(self, promo_code_id: str) -> bool:
        """使用一次优惠码，由调用方负责提交事务"""
        redeemed = await run_store_operation(self.promo_repo.redeem(promo_code_id))
        if redeemed:
            logger.info(f"优惠码已使用一次 id={promo_code_id}")
            await self._clear_promo_caches()
        else:
            logger.warning(f"优惠码使用失败（已停用或达到上限） id={promo_code_id}")
        return redeemed

    async def list_promo_codes(self, use_cache: bool = True) -> List[PromoCode]:
        """获取全部优惠码，最新创建的在前"""
        cache_key = "list:all"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return [PromoCode(**item) for item in cached]

        db_promos = await run_store_operation(self.promo_repo.list_all())
        promo_codes = [self.promo_repo.to_model(db_promo) for db_promo in db_promos]

        if use_cache:
            await self.cache.set(
                cache_key,
                [promo.model_dump(mode="json") for promo in promo_codes],
                ttl=self.cache_ttl
            )

        return promo_codes

    async def get_promo_code(self, promo_code_id: str) -> PromoCode:
        """获取单个优惠码"""
        db_promo = await run_store_operation(self.promo_repo.get_by_id(promo_code_id))
        if not db_promo:
            raise PromoCodeNotFoundError("Promo code not found")
        return self.promo_repo.to_model(db_promo)

    async def create_promo_code(self, promo_data: PromoCodeCreate) -> PromoCode:
        """创建优惠码"""
        existing = await run_store_operation(self.promo_repo.get_by_code(promo_data.code))
        if existing:
            raise DuplicatePromoCodeError(f"Promo code {promo_data.code} already exists")

        try:
            db_promo = await run_store_operation(self.promo_repo.create(promo_data.model_dump()))
            await run_store_operation(self.promo_repo.db.commit())
        except IntegrityError:
            await self.promo_repo.db.rollback()
            raise DuplicatePromoCodeError(f"Promo code {promo_data.code} already exists")

        logger.info(f"创建优惠码 code={promo_data.code}")
        await self._clear_promo_caches()
        return self.promo_repo.to_model(db_promo)

    async def update_promo_code(self, promo_code_id: str, promo_data: PromoCodeUpdate) -> PromoCode:
        """部分更新优惠码"""
        db_promo = await run_store_operation(self.promo_repo.get_by_id(promo_code_id))
        if not db_promo:
            raise PromoCodeNotFoundError("Promo code not found")

        update_data = promo_data.model_dump(exclude_unset=True)

        if update_data.get("code") and update_data["code"] != db_promo.code:
            existing = await run_store_operation(self.promo_repo.get_by_code(update_data["code"]))
            if existing:
                raise DuplicatePromoCodeError(f"Promo code {update_data['code']} already exists")

        # 设置一种折扣方式时清除另一种
        if update_data.get("discount_percent") is not None:
            update_data["discount_amount"] = None
        elif update_data.get("discount_amount") is not None:
            update_data["discount_percent"] = None

        self._check_merged_terms(db_promo, update_data)

        try:
            db_promo = await run_store_operation(self.promo_repo.update(promo_code_id, update_data))
            await run_store_operation(self.promo_repo.db.commit())
        except IntegrityError:
            await self.promo_repo.db.rollback()
            raise DuplicatePromoCodeError("Promo code already exists")

        logger.info(f"更新优惠码 id={promo_code_id} fields={sorted(update_data)}")
        await self._clear_promo_caches()
        return self.promo_repo.to_model(db_promo)

    async def delete_promo_code(self, promo_code_id: str) -> None:
        """删除优惠码"""
        deleted = await run_store_operation(self.promo_repo.delete(promo_code_id))
        if not deleted:
            raise PromoCodeNotFoundError("Promo code not found")
        await run_store_operation(self.promo_repo.db.commit())

        logger.info(f"删除优惠码 id={promo_code_id}")
        await self._clear_promo_caches()

    @staticmethod
    def _check_merged_terms(db_promo, update_data: dict) -> None:
        """合并更新后的字段仍需满足折扣与有效期约束"""
        percent = update_data.get("discount_percent", db_promo.discount_percent)
        amount = update_data.get("discount_amount", db_promo.discount_amount)
        if percent is None and amount is None:
            raise BusinessException("Either discount_percent or discount_amount is required")

        valid_from = ensure_utc(update_data.get("valid_from", db_promo.valid_from))
        valid_until = ensure_utc(update_data.get("valid_until", db_promo.valid_until))
        if valid_from and valid_until and valid_until <= valid_from:
            raise BusinessException("valid_until must be later than valid_from")

    async def _clear_promo_caches(self):
        """清除优惠码相关缓存"""
        await self.cache.delete_pattern("*")
