"""
支付与选课相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, validator
from enum import Enum


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"  # 待支付
    SUCCESS = "success"  # 已支付
    FAILED = "failed"  # 支付失败


class CourseItem(BaseModel):
    """购买的课程，只有 id 是必需的"""

    id: str = Field(..., min_length=1, description="课程ID")
    name: Optional[str] = Field(None, description="课程名称")
    price: Optional[Decimal] = Field(None, ge=0, description="课程价格")

    class Config:
        extra = "allow"


class Payment(BaseModel):
    """支付记录模型"""

    id: str = Field(..., description="支付记录ID")
    order_id: str = Field(..., description="内部订单号")
    user_id: str = Field(..., description="用户ID")
    amount_inr: Decimal = Field(..., ge=0, description="原始金额")
    discount_amount: Decimal = Field(default=Decimal('0'), ge=0, description="折扣金额")
    final_amount: Decimal = Field(..., ge=0, description="实付金额")
    currency: str = Field(default="INR", description="币种")
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, description="支付状态")
    payment_gateway: str = Field(default="razorpay", description="支付网关")
    razorpay_order_id: Optional[str] = Field(None, description="网关订单号")
    razorpay_payment_id: Optional[str] = Field(None, description="网关支付流水号")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="附加信息")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = Field(None, description="支付完成时间")

    @property
    def promo_code_id(self) -> Optional[str]:
        """下单时使用的优惠码ID"""
        return self.metadata.get("promo_code_id")

    def is_completed(self) -> bool:
        return self.status == PaymentStatus.SUCCESS

    class Config:
        json_encoders = {
            Decimal: str,
            datetime: lambda v: v.isoformat()
        }


class CheckoutOrderRequest(BaseModel):
    """创建支付订单请求"""

    user_id: str = Field(..., alias="userId", min_length=1, description="用户ID")
    amount_inr: Decimal = Field(..., alias="amount", gt=0, description="课程原价合计")
    courses: List[CourseItem] = Field(..., min_length=1, description="购买的课程")
    promo_code: Optional[str] = Field(None, alias="promoCode", description="优惠码")
    customer_info: Dict[str, Any] = Field(default_factory=dict, alias="customerInfo", description="客户信息")

    @validator('promo_code')
    def validate_promo_code(cls, v):
        """空白优惠码视为未使用"""
        if v is not None and not v.strip():
            return None
        return v

    class Config:
        populate_by_name = True


class CheckoutOrderResponse(BaseModel):
    """创建支付订单响应"""

    order_id: str = Field(..., serialization_alias="orderId")
    razorpay_order_id: str = Field(..., serialization_alias="razorpayOrderId")
    amount: int = Field(..., description="实付金额（paise）")
    currency: str
    key_id: str = Field(..., serialization_alias="keyId")
    final_amount: Decimal = Field(..., serialization_alias="finalAmount")
    discount_amount: Decimal = Field(..., serialization_alias="discountAmount")


class PaymentVerificationRequest(BaseModel):
    """支付回调校验请求，字段名与网关回调保持一致"""

    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    order_id: Optional[str] = Field(None, alias="orderId", description="内部订单号")
    user_id: Optional[str] = Field(None, alias="userId", description="用户ID")
    courses: List[CourseItem] = Field(default_factory=list, description="购买的课程")

    class Config:
        populate_by_name = True


class PaymentVerificationResult(BaseModel):
    """支付校验结果"""

    verified: bool
    message: str
    order_id: str
    first_transition: bool = Field(..., description="本次调用是否完成了 pending -> success")
    enrolled_course_ids: List[str] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {"verified": self.verified, "message": self.message}


class PaymentResponse(BaseModel):
    """支付记录查询响应"""

    order_id: str
    user_id: str
    amount_inr: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    status: PaymentStatus
    razorpay_order_id: Optional[str]
    razorpay_payment_id: Optional[str]
    promo_code: Optional[str]
    created_at: Optional[datetime]
    completed_at: Optional[datetime]

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentResponse":
        """从Payment模型创建响应对象"""
        return cls(
            order_id=payment.order_id,
            user_id=payment.user_id,
            amount_inr=payment.amount_inr,
            discount_amount=payment.discount_amount,
            final_amount=payment.final_amount,
            currency=payment.currency,
            status=payment.status,
            razorpay_order_id=payment.razorpay_order_id,
            razorpay_payment_id=payment.razorpay_payment_id,
            promo_code=payment.metadata.get("promo_code"),
            created_at=payment.created_at,
            completed_at=payment.completed_at
        )


class EnrollmentStatus(BaseModel):
    """选课状态查询结果"""

    student_id: str
    course_id: str
    enrolled: bool
    is_active: bool = False
    expires_at: Optional[datetime] = None
