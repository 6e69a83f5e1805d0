"""
支付接口：创建订单、校验支付回调、查询支付状态
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.dependencies import get_payment_service
from app.api.exceptions import BusinessException, SignatureVerificationError
from app.models.payment import (
    CheckoutOrderRequest,
    PaymentResponse,
    PaymentVerificationRequest
)
from app.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["支付"])


@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_checkout_order(
    payload: CheckoutOrderRequest,
    service: PaymentService = Depends(get_payment_service)
):
    """创建待支付订单，返回前端拉起收银台所需参数"""
    order = await service.create_checkout_order(payload)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=jsonable_encoder(order.model_dump(by_alias=True))
    )


@router.post("/verify")
async def verify_payment(
    payload: PaymentVerificationRequest,
    service: PaymentService = Depends(get_payment_service)
):
    """
    校验支付回调并开通课程

    签名不匹配返回400且不改动任何记录；其他失败按异常状态码返回，
    响应体统一为 {error, verified: false}。
    """
    try:
        result = await service.verify_payment(payload)
    except SignatureVerificationError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": e.message, "verified": False}
        )
    except BusinessException as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"error": e.message, "verified": False, "retriable": e.retriable}
        )
    except Exception as e:
        logger.exception(f"支付校验异常 order={payload.order_id}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "verified": False}
        )

    return result.to_response()


@router.get("/{order_id}", response_model=PaymentResponse)
async def get_payment(
    order_id: str,
    service: PaymentService = Depends(get_payment_service)
):
    payment = await service.get_payment(order_id)
    return PaymentResponse.from_payment(payment)


@router.post("/{order_id}/failed", response_model=PaymentResponse)
async def mark_payment_failed(
    order_id: str,
    service: PaymentService = Depends(get_payment_service)
):
    """前端收到网关支付失败时上报"""
    payment = await service.mark_payment_failed(order_id)
    return PaymentResponse.from_payment(payment)
