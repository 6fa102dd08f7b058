"""对外 API 服务模块。

提供简化的函数接口供 HTTP 层调用：解析表单字段、限流、执行管线，
并保证无论成功失败都返回结构完整的 JSON 响应体。
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from chat_core.agents.chat_agent import ChatAgent
from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError, RateLimited
from chat_core.domain.models import ChatTurn, ContinuationContext, ImageAttachment
from chat_core.infrastructure.logging.logger import logger
from chat_core.pipeline.rate_limiter import RateLimiter


_agent: Optional[ChatAgent] = None
_limiter: Optional[RateLimiter] = None


@dataclass
class ChatResponse:
    """HTTP 层需要的全部信息：响应体、状态码与附加响应头。"""

    payload: Dict[str, Any]
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)


def get_default_agent() -> ChatAgent:
    """获取默认的 ChatAgent 实例（单例）。"""
    global _agent
    if _agent is None:
        _agent = ChatAgent.from_settings(settings)
    return _agent


def get_default_rate_limiter() -> RateLimiter:
    """获取进程级共享的限流器（单例）。"""
    global _limiter
    if _limiter is None:
        _limiter = RateLimiter(
            limit=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _limiter


def parse_history(raw: Optional[str]) -> List[ChatTurn]:
    """解析 history 字段；缺失或不是合法 JSON 数组时按空历史处理。"""

    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Malformed history ignored", extra={"extra": {"history_chars": len(raw)}})
        return []
    if not isinstance(data, list):
        return []
    return [ChatTurn.from_payload(item) for item in data if isinstance(item, dict)]


def parse_continuation(raw: Optional[str]) -> Optional[ContinuationContext]:
    if not raw:
        return None
    try:
        return ContinuationContext.from_payload(json.loads(raw))
    except (json.JSONDecodeError, TypeError):
        return None


def error_response(error: BusinessError) -> ChatResponse:
    headers: Dict[str, str] = {}
    if error.retry_after is not None:
        headers["Retry-After"] = str(error.retry_after)
    return ChatResponse(payload=error.to_payload(), status=error.http_status, headers=headers)


def run_chat(
    message: Any,
    history: Optional[str] = None,
    file: Optional[ImageAttachment] = None,
    continuation_context: Optional[str] = None,
    client_identity: Optional[str] = None,
    agent: Optional[ChatAgent] = None,
    limiter: Optional[RateLimiter] = None,
) -> ChatResponse:
    """运行一次聊天请求。

    Args:
        message: 表单 message 字段（可能缺失）。
        history: 表单 history 字段（JSON 字符串）。
        file: 已读取的图片附件。
        continuation_context: 表单 continuationContext 字段（JSON 字符串）。
        client_identity: 限流使用的客户端身份。

    Returns:
        ChatResponse；该函数不会抛出异常。
    """
    limiter = limiter or get_default_rate_limiter()
    admission = limiter.admit(client_identity)
    if not admission.allowed:
        logger.warning("Rate limited", extra={"extra": {"client": client_identity}})
        return error_response(
            RateLimited(
                code="RATE_LIMITED",
                message="Too many requests. Please wait before sending more messages.",
                http_status=429,
                retry_after=admission.retry_after_seconds,
            )
        )

    try:
        agent = agent or get_default_agent()
        outcome = agent.handle(
            raw_message=message,
            history=parse_history(history),
            raw_file=file,
            continuation=parse_continuation(continuation_context),
        )
    except BusinessError as e:
        logger.error(f"Chat failed: {e.message}", extra={"extra": {
            "code": e.code,
            "status": e.http_status,
            "client": client_identity,
        }})
        return error_response(e)
    except Exception as e:
        logger.exception(f"Chat failed unexpectedly: {e}", extra={"extra": {"client": client_identity}})
        return ChatResponse(payload={"error": "Failed to process request", "status": 500}, status=500)
    return ChatResponse(payload=outcome.to_payload())
