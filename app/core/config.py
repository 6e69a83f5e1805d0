from pydantic_settings import BaseSettings
from typing import Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "Course Checkout Service"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "course_checkout_db"
    db_user: str = "checkout_user"
    db_password: str = "checkout_password"
    store_timeout_seconds: float = 10.0  # 单次数据库操作超时
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Redis配置 (查询缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Razorpay支付网关配置
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    payment_currency: str = "INR"

    # 选课配置
    enrollment_validity_days: int = 365

    # 日志配置
    log_level: str = "INFO"

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局配置实例
settings = Settings()
