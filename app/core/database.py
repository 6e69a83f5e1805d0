from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy import text
from typing import AsyncGenerator, Awaitable, Optional, TypeVar
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
import asyncio
import logging

from app.core.config import settings
from app.api.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

# 创建基础模型类
Base = declarative_base()

# 全局数据库引擎
engine: AsyncEngine = None
async_session_maker: sessionmaker = None


def _engine_options() -> dict:
    """测试环境不复用连接；其余环境按配置设置连接池大小"""
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if settings.is_testing:
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=3600,
        )
    return options


async def init_database(database_url: Optional[str] = None) -> None:
    """创建引擎和会话工厂；支付校验在同一会话事务内完成，提交后对象不过期"""
    global engine, async_session_maker

    url = database_url or settings.database_url_computed
    try:
        engine = create_async_engine(url, **_engine_options())
        async_session_maker = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise

    logger.info("数据库连接初始化成功")


async def close_database() -> None:
    """关闭数据库连接"""
    global engine

    if engine:
        await engine.dispose()
        logger.info("数据库连接已关闭")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话依赖注入函数"""
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


T = TypeVar("T")


async def run_store_operation(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """为单次数据库操作加超时，超时和数据库异常统一转为可重试错误"""
    timeout = timeout if timeout is not None else settings.store_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"数据库操作超时（{timeout}s）")
        raise StoreUnavailableError("Database operation timed out")
    except IntegrityError:
        # 唯一约束冲突由调用方按业务语义处理
        raise
    except SQLAlchemyError as e:
        logger.error(f"数据库操作失败: {e}")
        raise StoreUnavailableError("Database operation failed") from e


def dialect_insert(session: AsyncSession, table):
    """按会话所绑定的方言构造支持 ON CONFLICT 的 INSERT 语句"""
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"不支持的数据库方言: {dialect_name}")


class DatabaseService:
    """数据库服务类"""

    @property
    def engine(self):
        return engine

    async def _probe(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def health_check(self) -> dict:
        """执行 SELECT 1 探测连接，超过存储超时即判为不可用"""
        if not self.engine:
            return {"status": "error", "message": "数据库引擎未初始化"}

        try:
            await asyncio.wait_for(self._probe(), timeout=settings.store_timeout_seconds)
        except asyncio.TimeoutError:
            return {"status": "error", "message": "数据库连接超时"}
        except Exception as e:
            return {"status": "error", "message": f"数据库连接失败: {e}"}

        return {"status": "healthy", "message": "数据库连接正常"}


# 全局数据库服务实例
database_service = DatabaseService()
