"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层统一捕获并渲染为 ``{error, status, retryAfter?}`` 响应体。
"""

from typing import Any, Dict, Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MESSAGE_TOO_LONG"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 retry_after、status_code 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)

    @property
    def retry_after(self) -> Optional[int]:
        value = self.extra.get("retry_after")
        return int(value) if value is not None else None

    def to_payload(self) -> Dict[str, Any]:
        """渲染为对外响应体，不包含任何内部堆栈信息。"""

        payload: Dict[str, Any] = {"error": self.message, "status": self.http_status}
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload


# ---- 输入校验 ----


class ValidationError(BusinessError):
    """参数或输入校验失败，客户端需要修正后重试。"""


class InvalidFormat(ValidationError):
    """消息缺失或不是文本。"""


class TooLong(ValidationError):
    """消息超过允许的最大长度。"""


class UnsupportedMediaType(ValidationError):
    """附件不是图片。"""


class PayloadTooLarge(ValidationError):
    """附件超过大小上限。"""


# ---- 流量与配置 ----


class RateLimited(BusinessError):
    """本服务的限流拒绝，携带 retry_after 提示。"""


class ConfigurationError(BusinessError):
    """服务端配置缺失（例如未配置 API 密钥）。"""


# ---- 上游模型 ----


class UpstreamUnavailable(BusinessError):
    """上游模型暂时不可用，重试耗尽后才会抛出。"""


class UpstreamRejected(BusinessError):
    """上游返回 4xx，属于请求本身的问题，不重试。"""


class EmptyResponse(BusinessError):
    """上游没有返回可用的文本。"""


# ---- Provider 传输层（由 ModelInvoker 负责归类/重试） ----


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出，extra["status_code"] 为上游状态码。"""

    @property
    def status_code(self) -> Optional[int]:
        return self.extra.get("status_code")


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层负责重试/退避策略。"""
