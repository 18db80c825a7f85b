"""网关错误 -- 统一 {error: {code, message}} 响应"""

from starlette.responses import JSONResponse


class GatewayError(Exception):
    """可直接映射为 HTTP 错误响应的异常"""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def unauthorized(message: str = "Authentication required") -> GatewayError:
    return GatewayError(401, "UNAUTHORIZED", message)


def forbidden(message: str = "You do not have permission to perform this action") -> GatewayError:
    return GatewayError(403, "FORBIDDEN", message)


def task_not_found(task_id: str) -> GatewayError:
    return GatewayError(404, "TASK_NOT_FOUND", f"Task with id {task_id} does not exist")
