"""Provider 抽象接口。

ModelInvoker 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 负责：将 ModelRequest 转成具体 API 请求，并把响应 JSON 解析为 ModelReply。
- 传输层失败统一抛出 NetworkError / ApiError / RateLimitError，
  是否重试由 ModelInvoker 决定。
"""

from typing import Protocol

from chat_core.domain.models import ModelRequest, ModelReply


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - generate(req): 执行一次非流式调用，返回统一的 ModelReply。
    """

    name: str

    def generate(self, req: ModelRequest) -> ModelReply:
        ...
