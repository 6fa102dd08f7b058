"""按客户端身份的固定窗口限流。"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional


ANONYMOUS_IDENTITY = "anonymous"


@dataclass(frozen=True)
class Admission:
    """限流判定结果：allowed 为 False 时 retry_after_seconds > 0。"""

    allowed: bool
    retry_after_seconds: int = 0


@dataclass
class _Window:
    started_at: float
    count: int


def resolve_client_identity(headers: Mapping[str, str], client_host: Optional[str]) -> str:
    """X-Forwarded-For（第一个地址）> X-Real-IP > 连接地址 > 固定兜底值。

    headers 需支持不区分大小写的读取（如 starlette 的 Headers）。
    """

    forwarded = (headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if client_host:
        return client_host
    return ANONYMOUS_IDENTITY


class RateLimiter:
    """每个身份在 window_seconds 内最多放行 limit 次。

    计数的读取与递增在同一把锁内完成，并发请求不会同时拿到最后一个名额。
    """

    def __init__(
        self,
        limit: int = 30,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def admit(self, identity: Optional[str]) -> Admission:
        key = identity or ANONYMOUS_IDENTITY
        with self._lock:
            now = self._clock()
            self._prune(now)
            window = self._windows.get(key)
            if window is None:
                window = self._windows[key] = _Window(started_at=now, count=0)
            if window.count >= self._limit:
                remaining = window.started_at + self._window_seconds - now
                return Admission(allowed=False, retry_after_seconds=max(1, math.ceil(remaining)))
            window.count += 1
            return Admission(allowed=True)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if now - w.started_at >= self._window_seconds]
        for k in expired:
            del self._windows[k]
