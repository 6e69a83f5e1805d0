"""
数据库模型包初始化文件
"""

from .discount_code_db import DiscountCodeDB
from .payment_db import PaymentDB
from .enrollment_db import EnrollmentDB

__all__ = [
    "DiscountCodeDB",
    "PaymentDB",
    "EnrollmentDB"
]
