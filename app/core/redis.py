import redis.asyncio as aioredis
from typing import Optional
from app.core.config import settings
import structlog

"redis连接管理器：优惠码与支付查询缓存共用一个连接池"

logger = structlog.get_logger()


class RedisManager:
    """Redis连接管理器"""

    def __init__(self, url: Optional[str] = None, max_connections: int = 20):
        self.url = url
        self.max_connections = max_connections
        self.redis_pool: Optional[aioredis.Redis] = None

    @property
    def available(self) -> bool:
        return self.redis_pool is not None

    async def init_redis(self, required: bool = True) -> bool:
        """
        初始化Redis连接池

        Redis 只承担缓存时传 required=False，连接失败记录告警并返回 False，
        调用方按缓存未命中处理。
        """
        pool = aioredis.from_url(
            self.url or settings.redis_url_computed,
            encoding="utf-8",
            decode_responses=True,
            max_connections=self.max_connections,
            socket_connect_timeout=5,
            retry_on_timeout=True
        )
        try:
            await pool.ping()
        except Exception as e:
            await pool.close()
            if required:
                logger.error("Redis连接初始化失败", error=str(e))
                raise
            logger.warning("Redis不可用，缓存已禁用", error=str(e))
            return False

        self.redis_pool = pool
        logger.info("Redis连接初始化成功", max_connections=self.max_connections)
        return True

    async def close_redis(self) -> None:
        """关闭Redis连接"""
        if self.redis_pool:
            await self.redis_pool.close()
            self.redis_pool = None
            logger.info("Redis连接已关闭")

    async def ping(self) -> bool:
        """健康检查用，连接异常时返回 False"""
        if not self.redis_pool:
            return False
        try:
            return bool(await self.redis_pool.ping())
        except Exception as e:
            logger.error("Redis ping失败", error=str(e))
            return False


# 全局Redis管理器实例
redis_manager = RedisManager()
