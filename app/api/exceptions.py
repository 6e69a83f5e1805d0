"""
业务异常定义与全局异常处理器
"""

import logging
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError

from app.models.promo_code import PromoCodeMessage

logger = logging.getLogger(__name__)


class BusinessException(Exception):
    """业务异常基类"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    retriable: bool = False

    def __init__(self, message: str, status_code: int = None, retriable: bool = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if retriable is not None:
            self.retriable = retriable


class PromoCodeRequiredError(BusinessException):
    """未提供优惠码"""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidPromoCodeError(BusinessException):
    """下单时优惠码校验未通过"""
    status_code = status.HTTP_400_BAD_REQUEST


class PromoCodeNotFoundError(BusinessException):
    status_code = status.HTTP_404_NOT_FOUND


class DuplicatePromoCodeError(BusinessException):
    status_code = status.HTTP_409_CONFLICT


class PaymentValidationError(BusinessException):
    """支付请求缺少必要字段"""
    status_code = status.HTTP_400_BAD_REQUEST


class SignatureVerificationError(BusinessException):
    """网关签名校验失败，不可重试"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Payment verification failed"):
        super().__init__(message)


class PaymentConfigurationError(BusinessException):
    """支付网关密钥未配置"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PaymentGatewayError(BusinessException):
    """调用支付网关失败"""
    status_code = status.HTTP_502_BAD_GATEWAY
    retriable = True


class PaymentNotFoundError(BusinessException):
    """支付记录不存在"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class PaymentStateError(BusinessException):
    """支付记录状态不允许该操作"""
    status_code = status.HTTP_409_CONFLICT


class StoreUnavailableError(BusinessException):
    """数据库读写失败或超时，调用方可重试"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    retriable = True


async def business_exception_handler(request: Request, exc: BusinessException):
    """业务异常处理"""
    logger.warning(f"业务异常 {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "retriable": exc.retriable}
    )


VERIFY_PATH = "/payments/verify"
PROMO_VALIDATE_PATH = "/promo-codes/validate"


def _invalid_field(exc: RequestValidationError, field: str) -> bool:
    return any(tuple(error.get("loc", ()))[:2] == ("body", field) for error in exc.errors())


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    请求参数校验失败

    支付校验和优惠码校验接口的前端按固定结构解析响应，
    这两个接口的校验失败仍返回 {error, verified} 和 {valid, message}。
    """
    path = request.url.path.rstrip("/")
    logger.info(f"请求参数校验失败 {path}: {exc.errors()}")

    if path == VERIFY_PATH:
        content = {"error": "Invalid request body", "verified": False}
    elif path == PROMO_VALIDATE_PATH:
        message = PromoCodeMessage.REQUIRED if _invalid_field(exc, "code") else PromoCodeMessage.FAILED
        content = {"valid": False, "message": message}
    else:
        content = {"error": "Invalid request body", "details": jsonable_errors(exc)}

    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail}
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """数据库异常处理"""
    logger.error(f"数据库异常 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Database error", "retriable": True}
    )


async def general_exception_handler(request: Request, exc: Exception):
    """未捕获异常处理"""
    logger.exception(f"未处理的异常 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"}
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """只保留可序列化的错误字段"""
    return [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
