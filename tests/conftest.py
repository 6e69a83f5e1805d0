"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db_session
from app.models.database import DiscountCodeDB, PaymentDB, EnrollmentDB  # noqa: F401
from app.services.common_cache import promo_cache, payment_cache
from app.services.razorpay_gateway import RazorpayGateway
from app.utils.datetime_utils import utc_now

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test_secret_S"


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 内存SQLite，同一连接在会话间共享"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_db_engine):
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncSession:
    """测试数据库会话"""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture(autouse=True)
def disable_redis_cache():
    """测试默认不连接Redis，缓存全部视为未命中"""
    promo_cache.redis_client = None
    payment_cache.redis_client = None
    yield
    promo_cache.redis_client = None
    payment_cache.redis_client = None


@pytest.fixture
def mock_razorpay_client():
    """模拟Razorpay SDK客户端"""
    client = MagicMock()
    client.order.create.return_value = {
        "id": "order_gw_001",
        "amount": 0,
        "currency": "INR",
        "status": "created"
    }
    return client


@pytest.fixture
def gateway(mock_razorpay_client):
    """使用测试密钥的网关"""
    return RazorpayGateway(
        key_id=TEST_KEY_ID,
        key_secret=TEST_KEY_SECRET,
        client=mock_razorpay_client
    )


@pytest_asyncio.fixture
async def client(session_maker, gateway) -> AsyncGenerator[AsyncClient, None]:
    """接口测试客户端，数据库与网关均替换为测试实现"""
    from app.main import app
    from app.api.dependencies import get_razorpay_gateway

    async def override_db_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_razorpay_gateway] = lambda: gateway

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def promo_factory(db_session):
    """按需插入优惠码"""

    async def create(code: str = "SAVE20", **fields) -> DiscountCodeDB:
        now = utc_now()
        data = {
            "id": f"promo_{code.lower()}",
            "code": code,
            "description": "测试优惠码",
            "is_active": True,
            "discount_percent": Decimal("20"),
            "discount_amount": None,
            "valid_from": None,
            "valid_until": None,
            "max_uses": None,
            "times_used": 0,
            "created_at": now,
            "updated_at": now
        }
        data.update(fields)
        promo = DiscountCodeDB(**data)
        db_session.add(promo)
        await db_session.commit()
        return promo

    return create


@pytest_asyncio.fixture
async def payment_factory(db_session):
    """按需插入支付记录"""

    async def create(order_id: str = "ORD123", **fields) -> PaymentDB:
        now = utc_now()
        data = {
            "id": f"pay_{order_id.lower()}",
            "order_id": order_id,
            "user_id": "student_001",
            "amount_inr": Decimal("1000.00"),
            "discount_amount": Decimal("0.00"),
            "final_amount": Decimal("1000.00"),
            "currency": "INR",
            "status": "pending",
            "payment_gateway": "razorpay",
            "razorpay_order_id": order_id,
            "payment_metadata": {"courses": [{"id": "C1"}]},
            "created_at": now,
            "updated_at": now
        }
        data.update(fields)
        payment = PaymentDB(**data)
        db_session.add(payment)
        await db_session.commit()
        return payment

    return create
