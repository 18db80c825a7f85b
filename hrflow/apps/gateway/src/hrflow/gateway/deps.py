"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store / 配置 / 当前用户

Store 实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

import jwt
import structlog
from fastapi import Depends, Request
from hrflow.core.store import StoredUser, StoreGroup

from .config import GatewayConfig
from .errors import GatewayError, forbidden, unauthorized
from .services.auth_service import DEACTIVATED_MESSAGE, AuthService
from .services.otp_dispatcher import OtpDispatcher
from .services.security import decode_access_token
from .services.task_service import TaskService

log = structlog.get_logger()


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_gateway_config(request: Request) -> GatewayConfig:
    return request.app.state.gateway_config


def get_otp_dispatcher(request: Request) -> OtpDispatcher:
    return request.app.state.otp_dispatcher


def get_auth_service(
    store_group: StoreGroup = Depends(get_store_group),
    config: GatewayConfig = Depends(get_gateway_config),
) -> AuthService:
    return AuthService(store_group, config)


def get_task_service(
    store_group: StoreGroup = Depends(get_store_group),
    otp_dispatcher: OtpDispatcher = Depends(get_otp_dispatcher),
) -> TaskService:
    return TaskService(store_group, otp_dispatcher)


async def get_current_user(
    request: Request,
    store_group: StoreGroup = Depends(get_store_group),
    config: GatewayConfig = Depends(get_gateway_config),
) -> StoredUser:
    """解析 Authorization: Bearer <access token>

    Raises:
        GatewayError: 缺失/无效/过期（401），账号停用（403）
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise unauthorized()
    try:
        claims = decode_access_token(config, token.strip())
    except jwt.ExpiredSignatureError as e:
        raise unauthorized("Access token expired") from e
    except jwt.InvalidTokenError as e:
        raise unauthorized("Invalid access token") from e

    user = await store_group.user_store.get_user(claims["sub"])
    if user is None:
        raise unauthorized()
    if not user.is_active:
        log.info("deactivated_user_rejected", user_id=user.user_id)
        raise GatewayError(403, "ACCOUNT_DEACTIVATED", DEACTIVATED_MESSAGE)
    structlog.contextvars.bind_contextvars(user_id=user.user_id)
    return user


async def require_admin(user: StoredUser = Depends(get_current_user)) -> StoredUser:
    if not user.role.is_admin:
        raise forbidden("Admin role required")
    return user
