"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 API 层统一转换为 {kind, code, message} 结构返回给调用方。

分类：
- InvalidRequestError: 调用方输入缺失/非法，未发生任何状态变更。
- BackendUnavailableError: 推理服务不可达或返回非 2xx。
- BackendResponseError: 推理服务正常返回，但载荷不符合预期结构。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        kind: 错误大类（如 "invalid_request"），由子类固定。
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码。
        extra: 其他补充字段（例如 provider、model 等）。
    """

    kind = "business"
    default_http_status = 400

    def __init__(self, code: str, message: str, http_status: int | None = None, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status or self.default_http_status
        self.extra = extra
        super().__init__(message)


class InvalidRequestError(BusinessError):
    """必填字段缺失（会话 ID、文本与图片均为空）或模型未知。"""

    kind = "invalid_request"
    default_http_status = 400


class BackendUnavailableError(BusinessError):
    """网络失败、超时或推理服务返回非 2xx。上层自行决定是否重试。"""

    kind = "backend_unavailable"
    default_http_status = 502


class RateLimitError(BackendUnavailableError):
    """推理服务限流（HTTP 429）。"""

    default_http_status = 429


class BackendResponseError(BusinessError):
    """推理服务返回的数据缺少候选回答或图片内容。"""

    kind = "backend_response"
    default_http_status = 502
