"""集成测试共享 fixture

真实 AuthenticatedClient 通过 ASGITransport 直连网关 app，
cookie jar / token 刷新 / 错误映射走完整链路。
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport
from hrflow.client import AuthenticatedClient, ClientConfig, MemorySessionStorage, SessionStore
from hrflow.core.models import UserRole
from hrflow.core.store import StoredUser, create_store_group
from hrflow.gateway.config import GatewayConfig
from hrflow.gateway.services.auth_service import AuthService
from hrflow.gateway.services.otp_dispatcher import OutboxOtpDispatcher
from pydantic import SecretStr


@pytest.fixture
def password() -> str:
    return "integration-pass-123"


@pytest_asyncio.fixture
async def integration_app(monkeypatch, tmp_path: Path):
    """集成测试用 FastAPI app（手动初始化 lifespan 状态）"""
    monkeypatch.setenv("HRFLOW_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")

    from hrflow.gateway.main import create_app

    app = create_app()

    store_group = await create_store_group(str(tmp_path / "test.db"))
    app.state.db_path = str(tmp_path / "test.db")
    app.state.store_group = store_group
    app.state.gateway_config = GatewayConfig(
        jwt_secret=SecretStr("integration-secret-key-0123456789")
    )
    app.state.otp_dispatcher = OutboxOtpDispatcher()

    yield app

    await store_group.conn.close()


@pytest.fixture
def make_user(integration_app, password) -> Callable[..., Awaitable[StoredUser]]:
    service = AuthService(integration_app.state.store_group, integration_app.state.gateway_config)

    async def _make(email: str, role: UserRole = UserRole.EMPLOYEE) -> StoredUser:
        return await service.create_user(email, password, name=email.split("@")[0], role=role)

    return _make


@pytest_asyncio.fixture
async def make_client(integration_app) -> AsyncGenerator[Callable[[], AuthenticatedClient], None]:
    """创建连到 app 的 AuthenticatedClient（测试结束统一关闭）"""
    clients: list[AuthenticatedClient] = []

    def _make() -> AuthenticatedClient:
        client = AuthenticatedClient(
            session_store=SessionStore(MemorySessionStorage()),
            transport=ASGITransport(app=integration_app),
            config=ClientConfig(api_base_url="http://test/api", timeout_s=10.0),
        )
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()
