"""
数据模型包初始化文件
"""

from .promo_code import (
    PromoCode,
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoCodeValidationRequest,
    PromoCodeValidation,
    PromoCodeResponse,
    PromoCodeMessage
)
from .payment import (
    PaymentStatus,
    CourseItem,
    Payment,
    CheckoutOrderRequest,
    CheckoutOrderResponse,
    PaymentVerificationRequest,
    PaymentVerificationResult,
    PaymentResponse,
    EnrollmentStatus
)

__all__ = [
    "PromoCode",
    "PromoCodeCreate",
    "PromoCodeUpdate",
    "PromoCodeValidationRequest",
    "PromoCodeValidation",
    "PromoCodeResponse",
    "PromoCodeMessage",
    "PaymentStatus",
    "CourseItem",
    "Payment",
    "CheckoutOrderRequest",
    "CheckoutOrderResponse",
    "PaymentVerificationRequest",
    "PaymentVerificationResult",
    "PaymentResponse",
    "EnrollmentStatus"
]
