"""apps/gateway 测试配置 -- httpx AsyncClient + 手动初始化 lifespan 状态"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from hrflow.core.models import UserRole
from hrflow.core.store import StoredUser, StoreGroup, create_store_group
from hrflow.gateway.config import GatewayConfig
from hrflow.gateway.services.auth_service import AuthService
from hrflow.gateway.services.otp_dispatcher import OutboxOtpDispatcher
from hrflow.gateway.services.security import create_access_token
from pydantic import SecretStr

PASSWORD = "correct-horse-battery"


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(jwt_secret=SecretStr("test-secret-key-with-enough-length"))


@pytest.fixture
def outbox() -> OutboxOtpDispatcher:
    return OutboxOtpDispatcher()


@pytest_asyncio.fixture
async def store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    sg = await create_store_group(str(tmp_path / "gateway.db"))
    yield sg
    await sg.conn.close()


@pytest_asyncio.fixture
async def app(monkeypatch, tmp_path: Path, store_group, gateway_config, outbox):
    """创建测试用 FastAPI app，手动初始化 lifespan 状态"""
    monkeypatch.setenv("HRFLOW_DB_PATH", str(tmp_path / "gateway.db"))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from hrflow.gateway.main import create_app

    application = create_app()
    application.state.db_path = str(tmp_path / "gateway.db")
    application.state.store_group = store_group
    application.state.gateway_config = gateway_config
    application.state.otp_dispatcher = outbox
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def make_user(store_group, gateway_config) -> Callable[..., Awaitable[StoredUser]]:
    """创建账号的工厂"""
    service = AuthService(store_group, gateway_config)

    async def _make(email: str, role: UserRole = UserRole.EMPLOYEE, name: str = "") -> StoredUser:
        return await service.create_user(email, PASSWORD, name=name or email, role=role)

    return _make


@pytest.fixture
def auth_headers(gateway_config) -> Callable[[StoredUser], dict[str, str]]:
    def _headers(user: StoredUser) -> dict[str, str]:
        token = create_access_token(gateway_config, user.user_id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture
async def admin_user(make_user) -> StoredUser:
    return await make_user("admin@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def manager_user(make_user) -> StoredUser:
    return await make_user("manager@example.com", UserRole.MANAGER)


@pytest_asyncio.fixture
async def employee_user(make_user) -> StoredUser:
    return await make_user("employee@example.com", UserRole.EMPLOYEE)
