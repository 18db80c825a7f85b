"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、WAL 模式、磁盘空间。
"""

import shutil

import structlog
from fastapi import APIRouter, Request
from hrflow.core.store.sqlite_init import verify_wal_mode
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 验证核心依赖可用性

    检查项：
    1. sqlite: 数据库连通性
    2. wal_mode: 是否启用 WAL（内存库不适用，记为 skipped）
    3. disk_space_mb: 磁盘剩余空间
    """
    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("readiness_sqlite_failed", error_type=type(e).__name__)
        checks["sqlite"] = f"error: {e}"
        all_ok = False

    # 2. WAL 模式
    if checks["sqlite"] == "ok":
        db_path = getattr(request.app.state, "db_path", ":memory:")
        if db_path == ":memory:":
            checks["wal_mode"] = "skipped"
        elif await verify_wal_mode(store_group.conn):
            checks["wal_mode"] = "ok"
        else:
            checks["wal_mode"] = "disabled"

    # 3. 磁盘空间检查
    try:
        disk_usage = shutil.disk_usage("/")
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    status_code = 200 if all_ok else 503
    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_ok else "not_ready", "checks": checks},
    )
