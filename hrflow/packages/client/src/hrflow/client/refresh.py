"""RefreshCoordinator -- 单飞（single-flight）access token 刷新

同一时刻最多一个 refresh 在途。refresh 期间收到 401 的请求挂起为
PendingRequest，与发起者共享同一个 Future，在 refresh 结束时
统一拿到新 token 或同一个 TokenRefreshError。

状态：IDLE -> REFRESHING -> IDLE | LOGGED_OUT
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from .exceptions import TokenRefreshError

log = structlog.get_logger()


class RefreshState(StrEnum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


@dataclass
class PendingRequest:
    """refresh 期间挂起的请求"""

    method: str
    url: str
    future: asyncio.Future


class RefreshCoordinator:
    """单飞刷新协调器"""

    def __init__(self) -> None:
        self._state = RefreshState.IDLE
        self._inflight: asyncio.Future | None = None
        self._pending: list[PendingRequest] = []
        self._refresh_count = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None

    @property
    def pending_count(self) -> int:
        """当前挂起等待 refresh 的请求数"""
        return len(self._pending)

    @property
    def refresh_count(self) -> int:
        """累计发起的 refresh 次数"""
        return self._refresh_count

    def reset(self) -> None:
        """重新登录后回到 IDLE"""
        if self._inflight is None:
            self._state = RefreshState.IDLE

    async def acquire_token(
        self,
        refresh: Callable[[], Awaitable[str]],
        method: str = "",
        url: str = "",
    ) -> str:
        """获取新 access token

        已有 refresh 在途时挂起等待其结果；否则成为发起者执行 refresh。

        Args:
            refresh: 实际执行刷新的协程函数，失败时抛出 TokenRefreshError
            method: 触发刷新的请求方法（日志用）
            url: 触发刷新的请求地址（日志用）

        Returns:
            新的 access token

        Raises:
            TokenRefreshError: refresh 失败（发起者与所有挂起请求收到同一异常）
        """
        if self._inflight is not None:
            pending = PendingRequest(method=method, url=url, future=self._inflight)
            self._pending.append(pending)
            log.debug("token_refresh_request_queued", url=url, pending=len(self._pending))
            try:
                return await asyncio.shield(pending.future)
            finally:
                if pending in self._pending:
                    self._pending.remove(pending)

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._inflight = future
        self._state = RefreshState.REFRESHING
        self._refresh_count += 1
        log.info("token_refresh_started", url=url)
        try:
            token = await refresh()
        except asyncio.CancelledError:
            # 发起者被取消时，挂起请求按刷新失败处理
            self._state = RefreshState.IDLE
            future.set_exception(TokenRefreshError("Token refresh was cancelled"))
            future.exception()
            log.warning("token_refresh_cancelled", released=len(self._pending))
            raise
        except Exception as e:
            self._state = RefreshState.LOGGED_OUT
            future.set_exception(e)
            # 无挂起请求时也标记异常已被读取
            future.exception()
            log.warning(
                "token_refresh_failed",
                error_type=type(e).__name__,
                released=len(self._pending),
            )
            raise
        else:
            self._state = RefreshState.IDLE
            future.set_result(token)
            log.info("token_refresh_succeeded", released=len(self._pending))
            return token
        finally:
            self._inflight = None
