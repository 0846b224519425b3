"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、message_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx 错误或流中携带 error 负载时抛出。"""


class RateLimitError(BusinessError):
    """Provider 返回 429。本系统不做重试，与其他错误一样呈现给用户。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class DecodeFailure(BusinessError):
    """分享 token 无法解析（截断、非法字符、非 JSON、缺少必填字段）。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="DECODE_FAILURE", message=message, **extra)


class StoreReadFailure(BusinessError):
    """本地存储中的 Bot 列表已损坏，无法解析。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="STORE_READ_ERROR", message=message, **extra)


class StreamFailure(BusinessError):
    """模型服务在请求前或流式输出过程中失败。

    cause 保存原始异常，便于日志记录；对用户统一展示为连接错误。
    """

    def __init__(self, message: str, cause: BaseException | None = None, **extra):
        super().__init__(code="STREAM_FAILURE", message=message, http_status=502, **extra)
        self.cause = cause
