"""
服务包初始化文件
"""

from .common_cache import SimpleCache, promo_cache, payment_cache
from .promo_code_service import PromoCodeService
from .payment_service import PaymentService
from .enrollment_service import EnrollmentService
from .razorpay_gateway import RazorpayGateway

__all__ = [
    "SimpleCache",
    "promo_cache",
    "payment_cache",
    "PromoCodeService",
    "PaymentService",
    "EnrollmentService",
    "RazorpayGateway"
]
