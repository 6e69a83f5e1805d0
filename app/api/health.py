from fastapi import APIRouter
from fastapi.responses import JSONResponse
import logging

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import database_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "payments_configured": settings.razorpay_configured
    }


@router.get("/database")
async def database_health():
    """
    存储健康检查

    PostgreSQL 不可用时返回503；Redis 只承担缓存，不可用时仅标记为降级。
    """
    health_status = {
        "postgresql": False,
        "redis": False,
        "overall": False,
        "details": {}
    }

    pg_status = await database_service.health_check()
    health_status["postgresql"] = pg_status["status"] == "healthy"
    health_status["details"]["postgresql"] = pg_status["message"]

    health_status["redis"] = await redis_manager.ping()
    health_status["details"]["redis"] = "连接正常" if health_status["redis"] else "缓存不可用，已降级为直连数据库"

    health_status["overall"] = health_status["postgresql"] and health_status["redis"]

    if not health_status["postgresql"]:
        logger.error(f"数据库健康检查失败: {pg_status['message']}")
        return JSONResponse(status_code=503, content=health_status)

    if not health_status["overall"]:
        logger.warning("存储健康检查部分失败")
    return health_status
