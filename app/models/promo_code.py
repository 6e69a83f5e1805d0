"""
优惠码相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, validator, model_validator


class PromoCodeMessage:
    """优惠码校验提示信息"""
    REQUIRED = "Promo code is required"
    INVALID = "Invalid promo code"
    INACTIVE = "This promo code is no longer active"
    NOT_YET_VALID = "This promo code is not yet valid"
    EXPIRED = "This promo code has expired"
    USAGE_LIMIT = "This promo code has reached its usage limit"
    NOT_APPLICABLE = "This promo code is not applicable to this course"
    APPLIED = "Promo code applied successfully"
    FAILED = "Failed to validate promo code"


def normalize_code(code: str) -> str:
    """优惠码统一去空格并转大写"""
    return code.strip().upper()


class PromoCode(BaseModel):
    """优惠码基础模型"""

    id: str = Field(..., description="优惠码ID")
    code: str = Field(..., min_length=1, max_length=50, description="优惠码")
    description: Optional[str] = Field(None, description="优惠码描述")
    is_active: bool = Field(default=True, description="是否启用")
    discount_percent: Optional[Decimal] = Field(None, description="折扣百分比")
    discount_amount: Optional[Decimal] = Field(None, description="固定折扣金额")
    valid_from: Optional[datetime] = Field(None, description="有效开始时间")
    valid_until: Optional[datetime] = Field(None, description="有效结束时间")
    max_uses: Optional[int] = Field(None, description="总使用次数上限")
    times_used: int = Field(default=0, ge=0, description="已使用次数")
    applicable_courses: Optional[List[str]] = Field(None, description="适用课程ID列表")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_applicable_to_course(self, course_id: Optional[str]) -> bool:
        """检查是否适用于指定课程"""
        if not course_id or not self.applicable_courses:
            return True  # 无限制则适用于所有课程
        return course_id in self.applicable_courses

    class Config:
        json_encoders = {
            Decimal: str,
            datetime: lambda v: v.isoformat()
        }


class PromoCodeCreate(BaseModel):
    """创建优惠码模型"""

    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    discount_percent: Optional[Decimal] = Field(None, gt=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    applicable_courses: Optional[List[str]] = None

    @validator('code')
    def validate_code(cls, v):
        """优惠码不能为空白"""
        v = normalize_code(v)
        if not v:
            raise ValueError('优惠码不能为空')
        return v

    @model_validator(mode="after")
    def validate_discount_terms(self):
        """百分比折扣与固定金额折扣必须且只能设置一个"""
        if (self.discount_percent is None) == (self.discount_amount is None):
            raise ValueError('discount_percent 与 discount_amount 必须且只能设置一个')
        return self

    @validator('valid_until')
    def validate_validity_period(cls, v, values):
        """验证有效期"""
        valid_from = values.get('valid_from')
        if v is not None and valid_from is not None and v <= valid_from:
            raise ValueError('结束时间必须晚于开始时间')
        return v


class PromoCodeUpdate(BaseModel):
    """更新优惠码模型"""

    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None
    discount_percent: Optional[Decimal] = Field(None, gt=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, ge=1)
    applicable_courses: Optional[List[str]] = None

    @validator('code')
    def validate_code(cls, v):
        if v is None:
            return v
        v = normalize_code(v)
        if not v:
            raise ValueError('优惠码不能为空')
        return v


class PromoCodeValidationRequest(BaseModel):
    """优惠码校验请求"""

    code: Optional[str] = Field(None, description="优惠码，大小写不敏感")
    course_id: Optional[str] = Field(None, description="课程ID")


class PromoCodeValidation(BaseModel):
    """优惠码校验结果"""

    valid: bool = Field(..., description="是否有效")
    message: str = Field(..., description="提示信息")
    id: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    applicable_courses: Optional[List[str]] = Field(None, exclude=True, description="适用课程，只在下单时使用")

    @classmethod
    def rejected(cls, message: str) -> "PromoCodeValidation":
        return cls(valid=False, message=message)

    @classmethod
    def accepted(cls, promo_code: PromoCode) -> "PromoCodeValidation":
        return cls(
            valid=True,
            message=PromoCodeMessage.APPLIED,
            id=promo_code.id,
            code=promo_code.code,
            description=promo_code.description,
            discount_percent=promo_code.discount_percent,
            discount_amount=promo_code.discount_amount,
            applicable_courses=promo_code.applicable_courses
        )

    def to_response(self) -> Dict[str, Any]:
        """无效结果只返回 valid 和 message"""
        if not self.valid:
            return {"valid": False, "message": self.message}
        return self.model_dump()


class PromoCodeResponse(BaseModel):
    """优惠码管理响应模型"""

    id: str
    code: str
    description: Optional[str]
    is_active: bool
    discount_percent: Optional[Decimal]
    discount_amount: Optional[Decimal]
    valid_from: Optional[datetime]
    valid_until: Optional[datetime]
    max_uses: Optional[int]
    times_used: int
    remaining_uses: Optional[int]
    applicable_courses: Optional[List[str]]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_promo_code(cls, promo_code: PromoCode) -> "PromoCodeResponse":
        """从PromoCode模型创建响应对象"""
        remaining = None
        if promo_code.max_uses is not None:
            remaining = max(promo_code.max_uses - promo_code.times_used, 0)
        return cls(
            id=promo_code.id,
            code=promo_code.code,
            description=promo_code.description,
            is_active=promo_code.is_active,
            discount_percent=promo_code.discount_percent,
            discount_amount=promo_code.discount_amount,
            valid_from=promo_code.valid_from,
            valid_until=promo_code.valid_until,
            max_uses=promo_code.max_uses,
            times_used=promo_code.times_used,
            remaining_uses=remaining,
            applicable_courses=promo_code.applicable_courses,
            created_at=promo_code.created_at,
            updated_at=promo_code.updated_at
        )
