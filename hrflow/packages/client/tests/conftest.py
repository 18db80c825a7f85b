"""Client 包测试 fixtures"""

import pytest
from hrflow.client.config import ClientConfig
from hrflow.core.models import UserProfile, UserRole

API_BASE = "http://testserver/api"


class RecordingNavigator:
    """记录跳转的 Navigator"""

    def __init__(self, current_path: str = "/dashboard") -> None:
        self.current_path = current_path
        self.redirects: list[str] = []

    def redirect(self, path: str) -> None:
        self.redirects.append(path)


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(api_base_url=API_BASE, timeout_s=5.0)


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def employee() -> UserProfile:
    return UserProfile(id="emp-1", email="emp@example.com", name="Emp", role=UserRole.EMPLOYEE)


@pytest.fixture
def admin() -> UserProfile:
    return UserProfile(id="admin-1", email="boss@example.com", name="Boss", role=UserRole.ADMIN)
