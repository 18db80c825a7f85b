"""Client 异常体系"""


class ClientError(Exception):
    """Client 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或重新登录恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ApiError(ClientError):
    """类型化 API 收到非 2xx 响应

    message 取自响应体 error.message，缺失时使用调用方给出的兜底文案。
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str | None = None,
        payload: object = None,
    ) -> None:
        super().__init__(message, recoverable=status_code >= 500)
        self.status_code = status_code
        self.code = code
        self.payload = payload


class TokenRefreshError(ClientError):
    """access token 刷新失败

    服务端拒绝刷新时会话已被清理；refresh 期间排队的所有请求都会收到同一异常。
    发起者被取消时排队请求同样收到该异常，但会话保留。
    """

    def __init__(self, message: str = "Session expired, please log in again") -> None:
        super().__init__(message, recoverable=False)


class SessionTerminatedError(ClientError):
    """账号被停用，服务端返回 403 后会话已被清理"""

    def __init__(self, message: str = "Account is deactivated") -> None:
        super().__init__(message, recoverable=False)


class InvalidInputError(ClientError):
    """客户端前置校验失败（空 OTP、空原因等），请求不会发出"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=True)
