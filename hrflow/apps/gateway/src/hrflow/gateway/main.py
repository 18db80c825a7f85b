"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 认证配置 + OTP 投递通道 + 路由注册。
领域异常在此统一映射为 {error: {code, message}} 响应。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from hrflow.core.config import get_db_path
from hrflow.core.lifecycle import OtpRequiredError, TransitionRefusedError
from hrflow.core.otp import OtpError
from hrflow.core.store import TaskVersionConflictError, create_store_group

from .config import load_gateway_config
from .errors import GatewayError, error_response
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import auth, forms, health, settings, tasks
from .services.otp_dispatcher import create_otp_dispatcher

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB，关闭时清理连接"""
    db_path = get_db_path()
    store_group = await create_store_group(db_path)
    app.state.db_path = db_path
    app.state.store_group = store_group
    app.state.gateway_config = load_gateway_config()
    app.state.otp_dispatcher = create_otp_dispatcher()
    log.info("gateway_started", db_path=db_path)

    yield

    # 关闭：清理数据库连接
    if getattr(app.state, "store_group", None):
        await app.state.store_group.conn.close()
    log.info("gateway_stopped")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(TransitionRefusedError)
    async def transition_refused_handler(request: Request, exc: TransitionRefusedError):
        log.info(
            "task_transition_refused",
            task_id=exc.task_id,
            status=exc.status.value,
            action=exc.action.value,
        )
        return error_response(409, "TRANSITION_REFUSED", str(exc))

    @app.exception_handler(OtpRequiredError)
    async def otp_required_handler(request: Request, exc: OtpRequiredError):
        return error_response(409, "OTP_REQUIRED", str(exc))

    @app.exception_handler(TaskVersionConflictError)
    async def version_conflict_handler(request: Request, exc: TaskVersionConflictError):
        log.info("task_version_conflict", task_id=exc.task_id)
        return error_response(409, "VERSION_CONFLICT", str(exc))

    @app.exception_handler(OtpError)
    async def otp_error_handler(request: Request, exc: OtpError):
        return error_response(400, exc.code, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return error_response(400, "VALIDATION_ERROR", message)


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="HRFlow Gateway",
        version="0.1.0",
        description="外勤任务指派与审批 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    _register_exception_handlers(app)

    # 注册路由
    app.include_router(auth.router, tags=["auth"])
    app.include_router(tasks.tasks_router, tags=["tasks"])
    app.include_router(tasks.customers_router, tags=["customers"])
    app.include_router(settings.router, tags=["settings"])
    app.include_router(forms.router, tags=["forms"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
