"""AuthenticatedClient -- 带 Bearer token 的请求层

- 每个请求附带 Authorization / Accept / Content-Type 头
- 401 时单飞刷新 access token 并重放一次
- refresh 失败或账号停用（403 deactivated/inactive）时清理会话并跳转首页
- refresh token 只保存在 httpx 的 cookie jar 中
"""

import asyncio
from typing import Any, NoReturn, Protocol

import httpx
import structlog
from hrflow.core.models.session import UserProfile

from .config import ClientConfig, load_client_config
from .exceptions import ApiError, TokenRefreshError
from .refresh import RefreshCoordinator, RefreshState
from .session import FileSessionStorage, SessionStore

log = structlog.get_logger()

# 这些端点的 401 原样返回，不触发刷新
AUTH_ENDPOINTS: tuple[str, ...] = ("/auth/login", "/auth/register", "/auth/refresh")

# 当前位于这些页面时不做跳转
AUTH_VIEWS: tuple[str, ...] = ("/login", "/signup")

# 403 消息包含这些词时视为账号停用
DEACTIVATION_MARKERS: tuple[str, ...] = ("deactivated", "inactive")

REDIRECT_DELAY_S = 0.1


class Navigator(Protocol):
    """页面导航接口（UI 层实现）"""

    @property
    def current_path(self) -> str: ...

    def redirect(self, path: str) -> None: ...


def error_message(response: httpx.Response, fallback: str) -> str:
    """从错误响应中提取 error.message，失败时返回 fallback"""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback
    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
        return error["message"]
    if isinstance(error, str) and error:
        return error
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return fallback


def is_deactivation_response(response: httpx.Response) -> bool:
    """403 且消息表明账号已停用"""
    if response.status_code != 403:
        return False
    message = error_message(response, "").lower()
    return any(marker in message for marker in DEACTIVATION_MARKERS)


def is_auth_endpoint(url: str | httpx.URL) -> bool:
    path = httpx.URL(str(url)).path.rstrip("/")
    return any(path.endswith(endpoint) for endpoint in AUTH_ENDPOINTS)


class AuthenticatedClient:
    """认证请求客户端

    Args:
        base_url: API 基础地址（None 时取 ClientConfig）
        session_store: 会话持有者（None 时按 config.session_file 选择文件或内存会话）
        navigator: 页面导航（None 时不跳转）
        transport: 自定义 httpx transport（测试用）
        config: Client 配置（None 时从环境变量加载）
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        session_store: SessionStore | None = None,
        navigator: Navigator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        self._config = config or load_client_config()
        self._base_url = (base_url or self._config.api_base_url).rstrip("/")
        self._session = session_store or self._default_session_store(self._config)
        self._navigator = navigator
        self._refresh = RefreshCoordinator()
        self._redirect_handle: asyncio.TimerHandle | None = None
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            transport=transport,
            timeout=self._config.timeout_s,
        )

    @staticmethod
    def _default_session_store(config: ClientConfig) -> SessionStore:
        if config.session_file:
            return SessionStore(FileSessionStorage(config.session_file))
        return SessionStore()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def session(self) -> SessionStore:
        return self._session

    @property
    def refresh_coordinator(self) -> RefreshCoordinator:
        return self._refresh

    @property
    def cookies(self) -> httpx.Cookies:
        return self._http.cookies

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---- 请求 ----

    def _build_headers(
        self,
        token: str | None,
        *,
        multipart: bool,
    ) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if not multipart:
            headers["Content-Type"] = "application/json"
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _dispatch(
        self,
        method: str,
        url: str,
        token: str | None,
        *,
        json: Any = None,
        params: Any = None,
        files: Any = None,
        data: Any = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        # 非 JSON 请求体由 httpx 自行设置 Content-Type
        multipart = files is not None or content is not None or data is not None
        return await self._http.request(
            method,
            url,
            headers=self._build_headers(token, multipart=multipart),
            json=json,
            params=params,
            files=files,
            data=data,
            content=content,
        )

    async def send(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Any = None,
        files: Any = None,
        data: Any = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        """发送请求

        401 时按需刷新 token 并重放一次；
        最终响应（含重放结果）为 403 停用信号时清理会话。
        返回最终响应（调用方自行判断状态码）。

        Raises:
            TokenRefreshError: 需要刷新但刷新失败（会话已清理）
            httpx.HTTPError: 传输层错误
        """
        sent_token = self._session.access_token
        kwargs = {"json": json, "params": params, "files": files, "data": data, "content": content}
        response = await self._dispatch(method, url, sent_token, **kwargs)

        if response.status_code == 401:
            response = await self._handle_unauthorized(method, url, sent_token, response, kwargs)
        if response.status_code == 403:
            self._handle_forbidden(url, response)
        return response

    async def _handle_unauthorized(
        self,
        method: str,
        url: str,
        sent_token: str | None,
        response: httpx.Response,
        kwargs: dict[str, Any],
    ) -> httpx.Response:
        if is_auth_endpoint(url):
            return response

        if sent_token is None:
            log.warning("unauthenticated_request_rejected", method=method, url=url)
            return response

        current = self._session.access_token
        if current and current != sent_token:
            # 请求发出后已有 refresh 完成，直接用新 token 重放
            log.debug("request_replayed_with_newer_token", url=url)
            return await self._dispatch(method, url, current, **kwargs)

        if current is None and self._refresh.state is RefreshState.LOGGED_OUT:
            raise TokenRefreshError()

        token = await self._refresh.acquire_token(self._refresh_access_token, method, url)
        return await self._dispatch(method, url, token, **kwargs)

    def _handle_forbidden(self, url: str, response: httpx.Response) -> None:
        if not is_deactivation_response(response):
            log.info("request_forbidden", url=url)
            return
        log.warning("account_deactivated_session_terminated", url=url)
        self._terminate_session()

    async def _refresh_access_token(self) -> str:
        """POST /auth/refresh（只带 cookie，不带 Authorization）"""
        try:
            response = await self._http.post(
                "/auth/refresh",
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            self._fail_refresh("transport_error", error_type=type(e).__name__)

        if not response.is_success:
            self._fail_refresh("bad_status", status_code=response.status_code)
        try:
            body = response.json()
        except ValueError:
            self._fail_refresh("invalid_body")

        token = None
        if isinstance(body, dict) and body.get("success"):
            data = body.get("data")
            if isinstance(data, dict):
                token = data.get("accessToken")
        if not isinstance(token, str) or not token:
            self._fail_refresh("missing_access_token")

        self._session.update_token(token)
        return token

    def _fail_refresh(self, reason: str, **context: Any) -> NoReturn:
        log.warning("token_refresh_rejected", reason=reason, **context)
        self._terminate_session()
        raise TokenRefreshError()

    def _terminate_session(self) -> None:
        """清理会话并（非阻塞）跳转首页"""
        self._session.clear()
        self._schedule_redirect()

    def _schedule_redirect(self) -> None:
        if self._navigator is None:
            return
        current_path = self._navigator.current_path
        if any(view in current_path for view in AUTH_VIEWS):
            return
        if self._redirect_handle is not None and not self._redirect_handle.cancelled():
            self._redirect_handle.cancel()
        loop = asyncio.get_running_loop()
        self._redirect_handle = loop.call_later(REDIRECT_DELAY_S, self._navigator.redirect, "/")

    # ---- 认证 ----

    async def _authenticate(self, endpoint: str, payload: dict[str, Any], fallback: str) -> UserProfile:
        response = await self.send("POST", endpoint, json=payload)
        if not response.is_success:
            raise ApiError(response.status_code, error_message(response, fallback))
        body = response.json()
        data = body.get("data") or {}
        token = data.get("accessToken")
        user = UserProfile.model_validate(data.get("user") or {})
        if not body.get("success") or not self._session.set_credentials(user, token or ""):
            raise ApiError(response.status_code, fallback)
        self._refresh.reset()
        log.info("session_established", user_id=user.id, role=user.role.value)
        return user

    async def login(self, email: str, password: str) -> UserProfile:
        """登录，成功后写入会话（refresh token 由 cookie jar 保存）

        Raises:
            ApiError: 凭证错误或服务端拒绝
        """
        return await self._authenticate(
            "/auth/login",
            {"email": email, "password": password},
            "Login failed",
        )

    async def register(
        self,
        email: str,
        password: str,
        name: str = "",
        **extra: Any,
    ) -> UserProfile:
        """注册并登录"""
        return await self._authenticate(
            "/auth/register",
            {"email": email, "password": password, "name": name, **extra},
            "Registration failed",
        )

    async def fetch_current_user(self) -> UserProfile:
        """GET /auth/me 并更新会话中的用户信息"""
        response = await self.send("GET", "/auth/me")
        if not response.is_success:
            raise ApiError(response.status_code, error_message(response, "Failed to load profile"))
        user = UserProfile.model_validate(response.json()["data"]["user"])
        self._session.update_user(user)
        return user

    async def logout(self) -> None:
        """通知服务端注销（尽力而为）后清理本地会话"""
        try:
            response = await self.send("POST", "/auth/logout")
            if not response.is_success:
                log.warning("logout_request_failed", status_code=response.status_code)
        except (httpx.HTTPError, TokenRefreshError) as e:
            log.warning("logout_request_failed", error_type=type(e).__name__)
        finally:
            self._session.clear()
            self._http.cookies.clear()
            self._refresh.reset()
        log.info("session_closed")
