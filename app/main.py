from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import init_database, close_database
from app.api.health import router as health_router
from app.api.promo_codes import router as promo_codes_router
from app.api.payments import router as payments_router
from app.api.enrollments import router as enrollments_router
from app.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler,
    BusinessException
)
from app.services.common_cache import promo_cache, payment_cache

# 简化日志配置
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("正在启动课程结算服务")

    try:
        await init_database()
        logger.info("PostgreSQL数据库初始化成功")
    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    # Redis只用作缓存，连接失败时服务照常启动
    await redis_manager.init_redis(required=False)
    promo_cache.attach(redis_manager.redis_pool)
    payment_cache.attach(redis_manager.redis_pool)

    logger.info("应用启动完成")

    yield

    logger.info("正在关闭应用")
    await close_database()
    promo_cache.attach(None)
    payment_cache.attach(None)
    await redis_manager.close_redis()
    logger.info("应用关闭完成")


# 创建FastAPI应用
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="课程结算服务 - 优惠码校验、Razorpay支付校验与选课开通",
    debug=settings.debug,
    docs_url=None if settings.is_production else "/docs",
    lifespan=lifespan
)

# CORS中间件，预检请求返回 Access-Control-Allow-Origin: *
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 注册路由
app.include_router(health_router)
app.include_router(promo_codes_router)
app.include_router(payments_router)
app.include_router(enrollments_router)

# 注册异常处理器
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(BusinessException, business_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": f"欢迎使用 {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
