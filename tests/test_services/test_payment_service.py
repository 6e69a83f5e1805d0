"""
PaymentService业务逻辑测试 - 使用内存SQLite
"""

import asyncio
import logging

import pytest
import pytest_asyncio
from decimal import Decimal
from datetime import timedelta
from unittest.mock import AsyncMock

from sqlalchemy import select, func

from app.api.exceptions import (
    BusinessException,
    InvalidPromoCodeError,
    PaymentConfigurationError,
    PaymentNotFoundError,
    PaymentStateError,
    PaymentValidationError,
    SignatureVerificationError,
    StoreUnavailableError
)
from app.core.config import settings
from app.models.database import DiscountCodeDB, EnrollmentDB, PaymentDB
from app.models.payment import CheckoutOrderRequest, PaymentStatus, PaymentVerificationRequest
from app.repositories import EnrollmentRepository, PaymentRepository, PromoCodeRepository
from app.services.payment_service import PaymentService, generate_order_id
from app.services.promo_code_service import PromoCodeService
from app.services.razorpay_gateway import RazorpayGateway, compute_payment_signature
from app.utils.datetime_utils import utc_now, ensure_utc

TEST_KEY_SECRET = "test_secret_S"


def make_verification(order_id="ORD123", payment_id="PAY456", signature=None, **fields):
    data = {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or compute_payment_signature(TEST_KEY_SECRET, order_id, payment_id),
        "orderId": order_id,
        "userId": "student_001",
        "courses": [{"id": "C1"}]
    }
    data.update(fields)
    return PaymentVerificationRequest(**data)


async def count_rows(session, model, *criteria) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one()


@pytest.mark.asyncio
class TestPaymentService:
    """PaymentService业务逻辑测试类"""

    @pytest_asyncio.fixture
    async def payment_service(self, db_session, gateway):
        return PaymentService(
            payment_repo=PaymentRepository(db_session),
            enrollment_repo=EnrollmentRepository(db_session),
            promo_service=PromoCodeService(PromoCodeRepository(db_session)),
            gateway=gateway
        )

    async def test_verify_marks_success_and_enrolls(self, payment_service, payment_factory, db_session):
        """签名正确时支付记录转为成功并开通课程"""
        await payment_factory("ORD123")
        before = utc_now()

        result = await payment_service.verify_payment(make_verification())

        assert result.verified is True
        assert result.first_transition is True
        assert result.enrolled_course_ids == ["C1"]

        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        assert payment.status == PaymentStatus.SUCCESS.value
        assert payment.razorpay_payment_id == "PAY456"
        assert payment.completed_at is not None

        enrollment = await EnrollmentRepository(db_session).get_enrollment("student_001", "C1")
        assert enrollment.is_active is True
        expires_at = ensure_utc(enrollment.expires_at)
        assert before + timedelta(days=364) < expires_at <= utc_now() + timedelta(days=365)

    async def test_verify_bad_signature_touches_nothing(self, payment_service, payment_factory, db_session):
        await payment_factory("ORD123")

        with pytest.raises(SignatureVerificationError) as exc_info:
            await payment_service.verify_payment(make_verification(signature="deadbeef"))

        assert exc_info.value.message == "Payment verification failed"
        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.completed_at is None
        assert await count_rows(db_session, EnrollmentDB) == 0

    async def test_verify_requires_order_and_user(self, payment_service):
        with pytest.raises(PaymentValidationError):
            await payment_service.verify_payment(make_verification(orderId=None))
        with pytest.raises(PaymentValidationError):
            await payment_service.verify_payment(make_verification(userId=""))

    async def test_verify_without_secret(self, db_session):
        service = PaymentService(
            payment_repo=PaymentRepository(db_session),
            enrollment_repo=EnrollmentRepository(db_session),
            promo_service=PromoCodeService(PromoCodeRepository(db_session)),
            gateway=RazorpayGateway(key_id="rzp_test", key_secret="")
        )
        with pytest.raises(PaymentConfigurationError):
            await service.verify_payment(make_verification())

    async def test_verify_missing_payment_creates_no_enrollment(self, payment_service, db_session):
        with pytest.raises(PaymentNotFoundError):
            await payment_service.verify_payment(make_verification(order_id="ORD_MISSING"))

        assert await count_rows(db_session, EnrollmentDB) == 0

    async def test_verify_twice_is_idempotent(self, payment_service, payment_factory, db_session):
        """重复回调不产生重复选课记录，也不改写完成时间"""
        await payment_factory("ORD123")

        first = await payment_service.verify_payment(make_verification())
        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        completed_at = payment.completed_at

        second = await payment_service.verify_payment(make_verification())

        assert first.first_transition is True
        assert second.first_transition is False
        assert second.verified is True

        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        assert payment.completed_at == completed_at
        assert await count_rows(
            db_session, EnrollmentDB,
            EnrollmentDB.student_id == "student_001", EnrollmentDB.course_id == "C1"
        ) == 1
        enrollment = await EnrollmentRepository(db_session).get_enrollment("student_001", "C1")
        assert enrollment.is_active is True

    async def test_verify_failed_payment_conflict(self, payment_service, payment_factory, db_session):
        await payment_factory("ORD123", status="failed")

        with pytest.raises(PaymentStateError) as exc_info:
            await payment_service.verify_payment(make_verification())

        assert exc_info.value.status_code == 409
        assert await count_rows(db_session, EnrollmentDB) == 0

    async def test_verify_gateway_order_mismatch(self, payment_service, payment_factory, db_session):
        """签名有效但属于其他网关订单"""
        await payment_factory("ORD123", razorpay_order_id="order_gw_real")

        with pytest.raises(PaymentValidationError):
            await payment_service.verify_payment(make_verification(order_id="order_gw_other", orderId="ORD123"))

        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        assert payment.status == PaymentStatus.PENDING.value

    async def test_verify_falls_back_to_order_courses(self, payment_service, payment_factory, db_session):
        await payment_factory("ORD123", payment_metadata={"courses": [{"id": "C1"}, {"id": "C2"}]})

        result = await payment_service.verify_payment(make_verification(courses=[]))

        assert sorted(result.enrolled_course_ids) == ["C1", "C2"]
        assert await count_rows(db_session, EnrollmentDB, EnrollmentDB.student_id == "student_001") == 2

    async def test_verify_redeems_promo_once(self, payment_service, payment_factory, promo_factory, db_session):
        """优惠码仅在首次支付成功时计数"""
        promo = await promo_factory("SAVE20", max_uses=10, times_used=3)
        await payment_factory("ORD123", payment_metadata={"promo_code_id": promo.id, "courses": [{"id": "C1"}]})

        await payment_service.verify_payment(make_verification())
        await payment_service.verify_payment(make_verification())

        db_promo = await PromoCodeRepository(db_session).get_by_id(promo.id)
        await db_session.refresh(db_promo)
        assert db_promo.times_used == 4

    async def test_verify_rolls_back_on_enrollment_failure(self, payment_service, payment_factory, db_session):
        """选课写入失败时支付状态一并回滚，调用方可以重试"""
        await payment_factory("ORD123")
        payment_service.enrollment_repo.upsert_enrollments = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await payment_service.verify_payment(make_verification())

        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.completed_at is None

    async def test_verify_warns_when_callback_courses_differ(self, payment_service, payment_factory, caplog):
        """回调课程与下单课程不一致时记录告警"""
        await payment_factory("ORD123")

        with caplog.at_level(logging.WARNING, logger="app.services.payment_service"):
            result = await payment_service.verify_payment(make_verification(courses=[{"id": "C9"}]))

        assert result.enrolled_course_ids == ["C9"]
        assert any("ORD123" in record.getMessage() and "C9" in record.getMessage() for record in caplog.records)

    async def test_verify_store_timeout_is_retriable(self, payment_service, payment_factory, db_session, monkeypatch):
        """数据库操作超时按可重试错误返回，支付状态回滚"""
        await payment_factory("ORD123")
        monkeypatch.setattr(settings, "store_timeout_seconds", 0.2)

        async def slow_upsert(*args, **kwargs):
            await asyncio.sleep(2)

        payment_service.enrollment_repo.upsert_enrollments = slow_upsert

        with pytest.raises(StoreUnavailableError) as exc_info:
            await payment_service.verify_payment(make_verification())

        assert exc_info.value.status_code == 500
        assert exc_info.value.retriable is True
        payment = await PaymentRepository(db_session).get_by_order_id("ORD123")
        assert payment.status == PaymentStatus.PENDING.value
        assert await count_rows(db_session, EnrollmentDB) == 0

    async def test_create_checkout_order_with_promo(self, payment_service, promo_factory, mock_razorpay_client, db_session):
        await promo_factory("SAVE20")
        request = CheckoutOrderRequest(
            userId="student_001",
            amount=Decimal("1000"),
            courses=[{"id": "C1", "name": "Python入门"}],
            promoCode="save20",
            customerInfo={"email": "a@example.com"}
        )

        order = await payment_service.create_checkout_order(request)

        assert order.order_id.startswith("ORD_")
        assert order.razorpay_order_id == "order_gw_001"
        assert order.amount == 80000
        assert order.discount_amount == Decimal("200.00")
        assert order.final_amount == Decimal("800.00")
        assert order.key_id == "rzp_test_key"

        payload = mock_razorpay_client.order.create.call_args.args[0]
        assert payload["amount"] == 80000
        assert payload["receipt"] == order.order_id

        payment = await PaymentRepository(db_session).get_by_order_id(order.order_id)
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.payment_metadata["promo_code"] == "SAVE20"
        assert payment.payment_metadata["promo_code_id"] == "promo_save20"
        assert payment.payment_metadata["customer_info"] == {"email": "a@example.com"}

        # 下单不计入优惠码使用次数
        db_promo = await db_session.get(DiscountCodeDB, "promo_save20")
        assert db_promo.times_used == 0

    async def test_create_checkout_order_invalid_promo(self, payment_service, promo_factory, mock_razorpay_client, db_session):
        await promo_factory("OLD10", is_active=False)
        request = CheckoutOrderRequest(
            userId="student_001", amount=Decimal("1000"), courses=[{"id": "C1"}], promoCode="OLD10"
        )

        with pytest.raises(InvalidPromoCodeError) as exc_info:
            await payment_service.create_checkout_order(request)

        assert exc_info.value.message == "This promo code is no longer active"
        mock_razorpay_client.order.create.assert_not_called()
        assert await count_rows(db_session, PaymentDB) == 0

    async def test_create_checkout_order_below_gateway_minimum(self, payment_service, promo_factory, mock_razorpay_client):
        await promo_factory("FREE", discount_percent=Decimal("100"))
        request = CheckoutOrderRequest(
            userId="student_001", amount=Decimal("499"), courses=[{"id": "C1"}], promoCode="FREE"
        )

        with pytest.raises(BusinessException):
            await payment_service.create_checkout_order(request)
        mock_razorpay_client.order.create.assert_not_called()

    async def test_create_checkout_order_scoped_promo_discounts_eligible_courses(
        self, payment_service, promo_factory, mock_razorpay_client
    ):
        """限定课程的优惠码只对适用课程打折，与课程顺序无关"""
        await promo_factory("ONLYC1", discount_percent=Decimal("50"), applicable_courses=["C1"])
        courses = [{"id": "C1", "price": "1200"}, {"id": "C2", "price": "800"}]

        orders = []
        for ordered in (courses, list(reversed(courses))):
            request = CheckoutOrderRequest(
                userId="student_001", amount=Decimal("2000"), courses=ordered, promoCode="ONLYC1"
            )
            orders.append(await payment_service.create_checkout_order(request))

        for order in orders:
            assert order.discount_amount == Decimal("600.00")
            assert order.final_amount == Decimal("1400.00")
            assert order.amount == 140000

    async def test_create_checkout_order_scoped_promo_rejections(
        self, payment_service, promo_factory, mock_razorpay_client, db_session
    ):
        await promo_factory("ONLYC1", discount_percent=Decimal("50"), applicable_courses=["C1"])
        out_of_scope = CheckoutOrderRequest(
            userId="student_001", amount=Decimal("800"), courses=[{"id": "C2"}], promoCode="ONLYC1"
        )
        # 部分适用但缺少课程价格，无法拆分折扣
        unpriced = CheckoutOrderRequest(
            userId="student_001", amount=Decimal("2000"), courses=[{"id": "C1"}, {"id": "C2"}], promoCode="ONLYC1"
        )

        for request in (out_of_scope, unpriced):
            with pytest.raises(InvalidPromoCodeError) as exc_info:
                await payment_service.create_checkout_order(request)
            assert exc_info.value.message == "This promo code is not applicable to this course"

        mock_razorpay_client.order.create.assert_not_called()
        assert await count_rows(db_session, PaymentDB) == 0

    async def test_create_checkout_order_scoped_promo_all_courses_covered(
        self, payment_service, promo_factory, mock_razorpay_client
    ):
        await promo_factory("BUNDLE", discount_percent=Decimal("10"), applicable_courses=["C1", "C2"])
        request = CheckoutOrderRequest(
            userId="student_001", amount=Decimal("2000"), courses=[{"id": "C1"}, {"id": "C2"}], promoCode="BUNDLE"
        )

        order = await payment_service.create_checkout_order(request)

        assert order.discount_amount == Decimal("200.00")

    async def test_mark_payment_failed(self, payment_service, payment_factory):
        await payment_factory("ORD123")

        payment = await payment_service.mark_payment_failed("ORD123")
        assert payment.status == PaymentStatus.FAILED

        # 已失败的记录重复上报保持不变
        again = await payment_service.mark_payment_failed("ORD123")
        assert again.status == PaymentStatus.FAILED

    async def test_mark_successful_payment_failed_conflict(self, payment_service, payment_factory):
        await payment_factory("ORD123", status="success", completed_at=utc_now())

        with pytest.raises(PaymentStateError):
            await payment_service.mark_payment_failed("ORD123")

    async def test_get_payment(self, payment_service, payment_factory):
        await payment_factory("ORD123")

        payment = await payment_service.get_payment("ORD123")
        assert payment.order_id == "ORD123"
        assert payment.metadata["courses"] == [{"id": "C1"}]

        with pytest.raises(PaymentNotFoundError) as exc_info:
            await payment_service.get_payment("ORD_NONE")
        assert exc_info.value.status_code == 404


def test_generate_order_id_format():
    order_id = generate_order_id()
    prefix, stamp, suffix = order_id.split("_")
    assert prefix == "ORD"
    assert len(stamp) == 14 and stamp.isdigit()
    assert len(suffix) == 8 and suffix == suffix.upper()
