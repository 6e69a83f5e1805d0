"""
课程结算服务数据库表创建脚本
"""

import asyncio
import sys
import uuid
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy import text
from app.core.config import settings
from app.core.database import Base

# 导入所有数据库模型以确保表被注册
from app.models.database import DiscountCodeDB, PaymentDB, EnrollmentDB  # noqa: F401


async def create_database_if_not_exists():
    """创建数据库（如果不存在）"""
    # 连接到PostgreSQL服务器（不指定数据库）
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")

    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f'CREATE DATABASE "{settings.db_name}"'))
            print(f"数据库 '{settings.db_name}' 创建成功")
        else:
            print(f"数据库 '{settings.db_name}' 已存在")

    await engine.dispose()


async def create_tables():
    """创建所有数据表"""
    engine = create_async_engine(settings.database_url_computed)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        print("所有数据表创建成功")

    await engine.dispose()


async def create_indexes():
    """创建额外的索引"""
    engine = create_async_engine(settings.database_url_computed)

    indexes = [
        # 优惠码按大写查找
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_discount_codes_code_upper ON discount_codes (UPPER(code));",
        # 对账：已支付但缺少选课记录
        "CREATE INDEX IF NOT EXISTS idx_payments_status_completed ON payments(status, completed_at);",
        "CREATE INDEX IF NOT EXISTS idx_enrollments_student_active ON enrollments(student_id, is_active);"
    ]

    async with engine.begin() as conn:
        for index_sql in indexes:
            await conn.execute(text(index_sql))
        print("所有索引创建成功")

    await engine.dispose()


async def insert_sample_promo_codes():
    """插入示例优惠码"""
    engine = create_async_engine(settings.database_url_computed)

    sample_codes = [
        {
            "id": str(uuid.uuid4()),
            "code": "SAVE20",
            "description": "全场课程8折",
            "discount_percent": 20,
            "discount_amount": None,
            "max_uses": None
        },
        {
            "id": str(uuid.uuid4()),
            "code": "FLAT500",
            "description": "立减500卢比，限量100次",
            "discount_percent": None,
            "discount_amount": 500,
            "max_uses": 100
        }
    ]

    async with engine.begin() as conn:
        for promo in sample_codes:
            result = await conn.execute(
                text("SELECT 1 FROM discount_codes WHERE UPPER(code) = :code"),
                {"code": promo["code"]}
            )

            if not result.fetchone():
                await conn.execute(
                    text("""
                        INSERT INTO discount_codes (
                            id, code, description, is_active, discount_percent,
                            discount_amount, max_uses, times_used
                        ) VALUES (
                            :id, :code, :description, TRUE, :discount_percent,
                            :discount_amount, :max_uses, 0
                        )
                    """),
                    promo
                )
                print(f"插入优惠码: {promo['code']}")
            else:
                print(f"优惠码已存在: {promo['code']}")

    await engine.dispose()


async def main():
    """主函数"""
    print("开始创建课程结算数据库表...")

    await create_database_if_not_exists()
    await create_tables()
    await create_indexes()
    await insert_sample_promo_codes()

    print("课程结算数据库初始化完成！")


if __name__ == "__main__":
    asyncio.run(main())
