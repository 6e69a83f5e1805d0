"""
支付业务服务层
负责创建支付订单、校验网关回调并为已支付的课程开通学习权限
"""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from app.api.exceptions import (
    BusinessException,
    InvalidPromoCodeError,
    PaymentNotFoundError,
    PaymentStateError,
    PaymentValidationError,
    SignatureVerificationError
)
from app.core.config import settings
from app.core.database import run_store_operation
from app.models.payment import (
    CheckoutOrderRequest,
    CheckoutOrderResponse,
    CourseItem,
    Payment,
    PaymentStatus,
    PaymentVerificationRequest,
    PaymentVerificationResult
)
from app.models.promo_code import PromoCodeMessage, PromoCodeValidation
from app.repositories.enrollment_repository import EnrollmentRepository
from app.repositories.payment_repository import PaymentRepository
from app.services.common_cache import payment_cache
from app.services.promo_code_service import PromoCodeService, CENT
from app.services.razorpay_gateway import RazorpayGateway
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Payment verified and enrollment created"
MIN_GATEWAY_AMOUNT_PAISE = 100  # 网关最小收款金额 1 INR


def generate_order_id(now: Optional[datetime] = None) -> str:
    """生成内部订单号 ORD_<时间>_<随机串>"""
    now = now or utc_now()
    return f"ORD_{now.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8].upper()}"


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    """支付业务服务"""

    def __init__(
        self,
        payment_repo: PaymentRepository,
        enrollment_repo: EnrollmentRepository,
        promo_service: PromoCodeService,
        gateway: Optional[RazorpayGateway] = None
    ):
        self.payment_repo = payment_repo
        self.enrollment_repo = enrollment_repo
        self.promo_service = promo_service
        self.gateway = gateway or RazorpayGateway()
        self.cache = payment_cache
        self.cache_ttl = 300  # 支付状态缓存5分钟

    @property
    def db(self):
        return self.payment_repo.db

    async def create_checkout_order(self, order_request: CheckoutOrderRequest) -> CheckoutOrderResponse:
        """创建待支付订单：服务端重新校验优惠码并计算实付金额"""
        amount = Decimal(order_request.amount_inr).quantize(CENT, rounding=ROUND_HALF_UP)

        validation = None
        discount_base = amount
        if order_request.promo_code:
            validation = await self.promo_service.validate_promo_code(order_request.promo_code)
            if not validation.valid:
                raise InvalidPromoCodeError(validation.message)
            discount_base = self._discountable_amount(validation, order_request.courses, amount)

        discount = Decimal("0.00")
        if validation:
            discount = self.promo_service.calculate_discount(
                discount_base,
                discount_percent=validation.discount_percent,
                discount_amount=validation.discount_amount
            )
        final_amount = amount - discount
        amount_paise = to_paise(final_amount)
        if amount_paise < MIN_GATEWAY_AMOUNT_PAISE:
            raise BusinessException("Order amount after discount is below the payment gateway minimum")

        order_id = generate_order_id()
        currency = settings.payment_currency
        gateway_order = await self.gateway.create_order(
            amount_paise,
            currency,
            receipt=order_id,
            notes={"order_id": order_id, "user_id": order_request.user_id}
        )

        metadata = {
            "customer_info": order_request.customer_info,
            "promo_code": validation.code if validation else None,
            "promo_code_id": validation.id if validation else None,
            "courses": [course.model_dump(mode="json") for course in order_request.courses]
        }

        try:
            await run_store_operation(self.payment_repo.create_pending_payment(
                order_id=order_id,
                user_id=order_request.user_id,
                amount_inr=amount,
                discount_amount=discount,
                final_amount=final_amount,
                currency=currency,
                razorpay_order_id=gateway_order["id"],
                metadata=metadata
            ))
            await run_store_operation(self.db.commit())
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"创建支付订单 order={order_id} user={order_request.user_id} "
            f"amount={amount} discount={discount} final={final_amount}"
        )

        return CheckoutOrderResponse(
            order_id=order_id,
            razorpay_order_id=gateway_order["id"],
            amount=amount_paise,
            currency=currency,
            key_id=self.gateway.key_id,
            final_amount=final_amount,
            discount_amount=discount
        )

    async def verify_payment(self, verification: PaymentVerificationRequest) -> PaymentVerificationResult:
        """
        校验支付回调并开通课程

        1. 签名校验失败直接拒绝，不读写任何记录
        2. 仅当支付记录为 pending 时标记为 success，重复回调不会改写 completed_at
        3. 以 (student_id, course_id) 为冲突键批量 upsert 选课记录
        步骤2、3在同一事务中提交，任一步失败整体回滚，调用方可安全重试。
        """
        order_id = verification.order_id
        user_id = verification.user_id
        if not order_id or not user_id:
            raise PaymentValidationError("orderId and userId are required")

        if not self.gateway.verify_signature(
            verification.razorpay_order_id,
            verification.razorpay_payment_id,
            verification.razorpay_signature
        ):
            logger.warning(f"支付签名校验失败 order={order_id}")
            raise SignatureVerificationError()

        logger.info(f"支付签名校验通过 order={order_id}")
        completed_at = utc_now()

        try:
            db_payment = await run_store_operation(self.payment_repo.get_by_order_id(order_id))
            if not db_payment:
                raise PaymentNotFoundError(f"Payment record not found for order {order_id}")

            if db_payment.razorpay_order_id and db_payment.razorpay_order_id != verification.razorpay_order_id:
                logger.warning(f"网关订单号与支付记录不一致 order={order_id}")
                raise PaymentValidationError("Gateway order does not match this payment")

            first_transition = False
            if db_payment.status == PaymentStatus.PENDING.value:
                first_transition = await run_store_operation(self.payment_repo.mark_success_if_pending(
                    order_id,
                    verification.razorpay_order_id,
                    verification.razorpay_payment_id,
                    completed_at=completed_at
                ))

            if not first_transition:
                await self._ensure_already_completed(order_id)
                logger.info(f"重复的支付回调，保留原完成时间 order={order_id}")

            payment = self.payment_repo.to_model(db_payment)
            if first_transition and payment.promo_code_id:
                await self.promo_service.redeem_promo_code(payment.promo_code_id)

            course_ids = self._resolve_course_ids(verification, payment)
            expires_at = completed_at + timedelta(days=settings.enrollment_validity_days)
            enrolled = await run_store_operation(
                self.enrollment_repo.upsert_enrollments(user_id, course_ids, expires_at)
            )

            await run_store_operation(self.db.commit())
        except Exception:
            await self.db.rollback()
            raise

        await self.cache.delete(f"detail:{order_id}")
        logger.info(f"支付完成并开通课程 order={order_id} user={user_id} courses={enrolled}")

        return PaymentVerificationResult(
            verified=True,
            message=VERIFIED_MESSAGE,
            order_id=order_id,
            first_transition=first_transition,
            enrolled_course_ids=enrolled
        )

    async def mark_payment_failed(self, order_id: str) -> Payment:
        """客户端上报支付失败，仅 pending 记录可以转为 failed"""
        try:
            updated = await run_store_operation(self.payment_repo.mark_failed_if_pending(order_id))
            db_payment = await run_store_operation(self.payment_repo.get_by_order_id(order_id))
            if not db_payment:
                raise PaymentNotFoundError("Payment not found", status_code=404)
            if not updated and db_payment.status != PaymentStatus.FAILED.value:
                raise PaymentStateError(f"Payment is already {db_payment.status}")
            await run_store_operation(self.db.commit())
        except Exception:
            await self.db.rollback()
            raise

        await self.cache.delete(f"detail:{order_id}")
        logger.info(f"支付失败 order={order_id}")
        return self.payment_repo.to_model(db_payment)

    async def get_payment(self, order_id: str, use_cache: bool = True) -> Payment:
        """查询支付记录"""
        cache_key = f"detail:{order_id}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return Payment(**cached)

        db_payment = await run_store_operation(self.payment_repo.get_by_order_id(order_id))
        if not db_payment:
            raise PaymentNotFoundError("Payment not found", status_code=404)

        payment = self.payment_repo.to_model(db_payment)
        if use_cache:
            await self.cache.set(cache_key, payment.model_dump(mode="json"), ttl=self.cache_ttl)
        return payment

    @staticmethod
    def _discountable_amount(
        validation: PromoCodeValidation,
        courses: List[CourseItem],
        amount: Decimal
    ) -> Decimal:
        """
        限定课程的优惠码只对适用课程打折

        全部课程都适用时按订单金额计算；部分适用时按适用课程的 price 合计计算，
        缺少价格无法拆分时拒绝使用该优惠码。
        """
        scope = validation.applicable_courses
        if not scope:
            return amount

        eligible = [course for course in courses if course.id in scope]
        if not eligible:
            raise InvalidPromoCodeError(PromoCodeMessage.NOT_APPLICABLE)
        if len(eligible) == len(courses):
            return amount
        if any(course.price is None for course in eligible):
            raise InvalidPromoCodeError(PromoCodeMessage.NOT_APPLICABLE)

        return min(sum((Decimal(course.price) for course in eligible), Decimal("0")), amount)

    async def _ensure_already_completed(self, order_id: str) -> None:
        """条件更新未命中时确认记录已经是 success"""
        db_payment = await run_store_operation(self.payment_repo.get_by_order_id(order_id))
        if not db_payment:
            raise PaymentNotFoundError(f"Payment record not found for order {order_id}")
        if not self.payment_repo.to_model(db_payment).is_completed():
            raise PaymentStateError(f"Payment is already {db_payment.status}")

    @staticmethod
    def _resolve_course_ids(verification: PaymentVerificationRequest, payment: Payment) -> List[str]:
        """优先使用回调中的课程列表，缺省时回退到下单时记录的课程"""
        ordered = [course["id"] for course in payment.metadata.get("courses", []) if course.get("id")]
        if not verification.courses:
            return ordered

        course_ids = [course.id for course in verification.courses]
        # 课程列表不在签名范围内
        if ordered and set(course_ids) != set(ordered):
            logger.warning(
                f"回调课程与下单课程不一致 order={payment.order_id} "
                f"callback={sorted(set(course_ids))} ordered={sorted(set(ordered))}"
            )
        return course_ids
