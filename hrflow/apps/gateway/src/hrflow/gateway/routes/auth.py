"""认证路由

POST /api/auth/register: 自助注册并登录
POST /api/auth/login: 登录，响应体返回 accessToken，refreshToken 写入 httpOnly cookie
POST /api/auth/refresh: 用 cookie 中的 refreshToken 换取新 accessToken
POST /api/auth/logout: 吊销 refreshToken 并清除 cookie
GET  /api/auth/me: 当前用户
"""

from fastapi import APIRouter, Depends, Request, Response
from hrflow.core.models import UserRole
from hrflow.core.store import StoredUser
from pydantic import BaseModel, Field

from ..config import GatewayConfig
from ..deps import get_auth_service, get_current_user, get_gateway_config
from ..services.auth_service import AuthService, AuthSession

router = APIRouter(prefix="/api/auth")


class LoginRequest(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=8)
    name: str = ""
    role: UserRole = UserRole.EMPLOYEE
    phone: str | None = None


def _set_refresh_cookie(response: Response, config: GatewayConfig, token: str) -> None:
    response.set_cookie(
        key=config.refresh_cookie_name,
        value=token,
        max_age=config.refresh_token_ttl_s,
        httponly=True,
        secure=config.cookie_secure,
        samesite="lax",
        path="/",
    )


def _session_body(session: AuthSession) -> dict:
    return {
        "success": True,
        "data": {
            "user": session.user.to_profile().model_dump(mode="json"),
            "accessToken": session.access_token,
        },
    }


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    config: GatewayConfig = Depends(get_gateway_config),
):
    session = await service.register(
        body.email,
        body.password,
        name=body.name,
        role=body.role,
        phone=body.phone,
    )
    _set_refresh_cookie(response, config, session.refresh_token)
    return _session_body(session)


@router.post("/login")
async def login(
    body: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    config: GatewayConfig = Depends(get_gateway_config),
):
    session = await service.login(body.email, body.password)
    _set_refresh_cookie(response, config, session.refresh_token)
    return _session_body(session)


@router.post("/refresh")
async def refresh(
    request: Request,
    service: AuthService = Depends(get_auth_service),
    config: GatewayConfig = Depends(get_gateway_config),
):
    """只读取 cookie，不要求 Authorization 头"""
    session = await service.refresh(request.cookies.get(config.refresh_cookie_name))
    return {"success": True, "data": {"accessToken": session.access_token}}


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    config: GatewayConfig = Depends(get_gateway_config),
):
    await service.logout(request.cookies.get(config.refresh_cookie_name))
    response.delete_cookie(config.refresh_cookie_name, path="/")
    return {"success": True, "data": {}}


@router.get("/me")
async def me(user: StoredUser = Depends(get_current_user)):
    return {"success": True, "data": {"user": user.to_profile().model_dump(mode="json")}}
