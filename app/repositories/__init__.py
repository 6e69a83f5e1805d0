"""
仓库包初始化文件 - 数据库访问层
"""

from .promo_code_repository import PromoCodeRepository
from .payment_repository import PaymentRepository
from .enrollment_repository import EnrollmentRepository

__all__ = [
    "PromoCodeRepository",
    "PaymentRepository",
    "EnrollmentRepository"
]
