"""
路由依赖注入：按请求构造仓库与业务服务
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.repositories import PromoCodeRepository, PaymentRepository, EnrollmentRepository
from app.services.promo_code_service import PromoCodeService
from app.services.payment_service import PaymentService
from app.services.enrollment_service import EnrollmentService
from app.services.razorpay_gateway import RazorpayGateway


def get_razorpay_gateway() -> RazorpayGateway:
    return RazorpayGateway()


def get_promo_code_service(db: AsyncSession = Depends(get_db_session)) -> PromoCodeService:
    return PromoCodeService(PromoCodeRepository(db))


def get_payment_service(
    db: AsyncSession = Depends(get_db_session),
    gateway: RazorpayGateway = Depends(get_razorpay_gateway)
) -> PaymentService:
    return PaymentService(
        payment_repo=PaymentRepository(db),
        enrollment_repo=EnrollmentRepository(db),
        promo_service=PromoCodeService(PromoCodeRepository(db)),
        gateway=gateway
    )


def get_enrollment_service(db: AsyncSession = Depends(get_db_session)) -> EnrollmentService:
    return EnrollmentService(EnrollmentRepository(db))
