"""上游模型调用与重试。

每次调用最多尝试 max_attempts 次：

- 上游 4xx（429 除外）视为请求本身有问题，直接抛出 UpstreamRejected；
- 429、5xx、网络错误与超时按 base_delay * 2**attempt 指数退避后重试；
- 单轮总耗时不超过 turn_timeout：每次尝试的超时取 attempt_timeout 与剩余时间的较小值，
  退避加一次完整尝试会越过上限时不再重试，尝试结束时已过截止时间则放弃结果；
- 重试耗尽后抛出 UpstreamUnavailable，上游过载时附带 retry_after。

sleep 与 clock 可注入，测试无需真实等待。
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from chat_core.domain.exceptions import (
    ApiError,
    BusinessError,
    EmptyResponse,
    NetworkError,
    RateLimitError,
    UpstreamRejected,
    UpstreamUnavailable,
)
from chat_core.domain.models import ImageAttachment, ModelReply, ModelRequest
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import ProviderClient


TransientError = (NetworkError, RateLimitError, ApiError)


def is_retryable(error: BusinessError) -> bool:
    """429 / 5xx / 网络错误可重试；其余 4xx 不重试。"""

    if isinstance(error, (NetworkError, RateLimitError)):
        return True
    if isinstance(error, ApiError):
        status = error.status_code
        return status is None or not (400 <= status < 500) or status == 429
    return False


def is_overload(error: Optional[BusinessError]) -> bool:
    if isinstance(error, RateLimitError):
        return True
    return isinstance(error, ApiError) and error.status_code == 503


class ModelInvoker:
    def __init__(
        self,
        provider: ProviderClient,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        turn_timeout: float = 60.0,
        overload_retry_after: int = 30,
        attempt_timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._provider = provider
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._turn_timeout = turn_timeout
        self._overload_retry_after = overload_retry_after
        self._attempt_timeout = attempt_timeout
        self._sleep = sleep
        self._clock = clock

    def invoke(
        self,
        prompt_text: str,
        image_attachment: Optional[ImageAttachment] = None,
        live_text: str = "",
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> ModelReply:
        """执行一次上游调用（含重试），返回原始 ModelReply。

        Raises:
            UpstreamRejected: 上游返回 4xx（429 除外）。
            UpstreamUnavailable: 重试耗尽或超出单轮耗时上限。
            EmptyResponse: 上游没有返回任何候选文本。
            ConfigurationError: 缺少 API 密钥等配置问题（不重试）。
        """
        ctx = dict(log_ctx or {})
        deadline = self._clock() + self._turn_timeout
        last_error: Optional[BusinessError] = None

        for attempt in range(self._max_attempts):
            if attempt:
                delay = self._base_delay * (2 ** (attempt - 1))
                if self._clock() + delay + self._attempt_timeout > deadline:
                    self._log(logging.WARNING, "Turn deadline reached, giving up", ctx, attempt=attempt)
                    raise self._unavailable(last_error, timed_out=True)
                self._log(logging.INFO, "Retrying upstream call", ctx, attempt=attempt, delay_seconds=delay)
                self._sleep(delay)
            req = ModelRequest(
                prompt_text=prompt_text,
                image_attachment=image_attachment,
                live_text=live_text,
                timeout=min(self._attempt_timeout, deadline - self._clock()),
            )
            try:
                reply = self._provider.generate(req)
            except TransientError as error:
                if not is_retryable(error):
                    self._log(
                        logging.ERROR,
                        "Upstream rejected request",
                        ctx,
                        attempt=attempt,
                        status_code=getattr(error, "status_code", None),
                        error=error.message,
                    )
                    raise UpstreamRejected(
                        code="UPSTREAM_REJECTED",
                        message=f"The model rejected the request: {error.message}",
                        http_status=500,
                    ) from error
                last_error = error
                self._log(logging.WARNING, "Upstream call failed", ctx, attempt=attempt, error=error.message)
                continue

            if self._clock() > deadline:
                self._log(logging.WARNING, "Reply arrived after turn deadline", ctx, attempt=attempt)
                raise self._unavailable(last_error, timed_out=True)
            if not reply.raw_text:
                raise EmptyResponse(
                    code="EMPTY_RESPONSE",
                    message="The model returned an empty response. Please try again.",
                    http_status=500,
                    finish_reason=reply.finish_reason,
                )
            self._log(
                logging.INFO,
                "Upstream call succeeded",
                ctx,
                attempt=attempt,
                finish_reason=reply.finish_reason,
            )
            return reply

        raise self._unavailable(last_error, timed_out=False)

    def _unavailable(self, last_error: Optional[BusinessError], timed_out: bool) -> UpstreamUnavailable:
        if is_overload(last_error):
            return UpstreamUnavailable(
                code="UPSTREAM_OVERLOADED",
                message="The model is currently overloaded. Please try again later.",
                http_status=503,
                retry_after=self._overload_retry_after,
            )
        if timed_out:
            return UpstreamUnavailable(
                code="TURN_TIMEOUT",
                message="The model did not respond in time. Please try again.",
                http_status=500,
            )
        detail = last_error.message if last_error is not None else "no attempts made"
        return UpstreamUnavailable(
            code="UPSTREAM_UNAVAILABLE",
            message=f"The model is unavailable: {detail}",
            http_status=500,
        )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
