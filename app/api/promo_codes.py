"""
优惠码接口：前台校验与后台管理
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.api.dependencies import get_promo_code_service
from app.api.exceptions import PromoCodeRequiredError
from app.models.promo_code import (
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoCodeResponse,
    PromoCodeValidationRequest,
    PromoCodeMessage
)
from app.services.promo_code_service import PromoCodeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/promo-codes", tags=["优惠码"])


@router.post("/validate")
async def validate_promo_code(
    payload: PromoCodeValidationRequest,
    service: PromoCodeService = Depends(get_promo_code_service)
):
    """
    校验优惠码

    优惠码无效属于正常业务结果，返回200且 valid=false；
    缺少优惠码返回400，其他异常返回500，响应体均保持 {valid, message} 结构。
    """
    try:
        result = await service.validate_promo_code(payload.code, course_id=payload.course_id)
    except PromoCodeRequiredError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"valid": False, "message": e.message}
        )
    except Exception as e:
        logger.error(f"优惠码校验异常 code={payload.code}: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"valid": False, "message": PromoCodeMessage.FAILED}
        )

    return JSONResponse(content=jsonable_encoder(result.to_response()))


@router.get("", response_model=List[PromoCodeResponse])
async def list_promo_codes(service: PromoCodeService = Depends(get_promo_code_service)):
    """后台：优惠码列表"""
    promo_codes = await service.list_promo_codes()
    return [PromoCodeResponse.from_promo_code(promo) for promo in promo_codes]


@router.post("", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_promo_code(
    payload: PromoCodeCreate,
    service: PromoCodeService = Depends(get_promo_code_service)
):
    promo_code = await service.create_promo_code(payload)
    return PromoCodeResponse.from_promo_code(promo_code)


@router.get("/{promo_code_id}", response_model=PromoCodeResponse)
async def get_promo_code(
    promo_code_id: str,
    service: PromoCodeService = Depends(get_promo_code_service)
):
    promo_code = await service.get_promo_code(promo_code_id)
    return PromoCodeResponse.from_promo_code(promo_code)


@router.patch("/{promo_code_id}", response_model=PromoCodeResponse)
async def update_promo_code(
    promo_code_id: str,
    payload: PromoCodeUpdate,
    service: PromoCodeService = Depends(get_promo_code_service)
):
    promo_code = await service.update_promo_code(promo_code_id, payload)
    return PromoCodeResponse.from_promo_code(promo_code)


@router.delete("/{promo_code_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_promo_code(
    promo_code_id: str,
    service: PromoCodeService = Depends(get_promo_code_service)
):
    await service.delete_promo_code(promo_code_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
