"""Gemini Provider 适配器。

本模块负责：

1. 接收统一的 ModelRequest。
2. 将其转换为 Gemini ``generateContent`` 的 HTTP 请求格式：
   assembled prompt 作为唯一的前置 user 轮次，用户消息（文本 + 可选内联图片）
   作为当前轮次。
3. 调用 HTTP 接口并把网络/API 异常包装为统一的业务异常。
4. 将响应 JSON 解析为统一的 ModelReply。

- URL: {base_url}/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>
"""

import base64
import json
from typing import Any, Dict, List, Optional, Sequence

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, ConfigurationError, NetworkError, RateLimitError
from chat_core.domain.models import ModelReply, ModelRequest, ModelUsage
from chat_core.providers.registry import GEMINI_CONFIG, ModelConfig


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(
        self,
        cfg=settings,
        model: Optional[str] = None,
        stop_sequences: Sequence[str] = ("User:",),
    ):
        # Settings 里包含 base_url、api_key、超时、输出上限等配置
        self._settings = cfg
        self._model = model or getattr(cfg, "default_model", "chat")
        self._stop_sequences = list(stop_sequences)

    def generate(self, req: ModelRequest) -> ModelReply:
        api_key = getattr(self._settings, "google_api_key", None)
        if not api_key:
            # 配置缺失不是上游故障，不参与重试
            raise ConfigurationError(code="MISSING_API_KEY", message="API key not configured", http_status=500)
        model_cfg = GEMINI_CONFIG.models[self._model]
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        timeout = self._settings.http_timeout
        if req.timeout is not None:
            timeout = min(timeout, req.timeout)
        try:
            with httpx.Client(timeout=timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base}/models/{model_cfg.provider_model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__, http_status=500)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=503)
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=self._error_message(resp),
                http_status=500,
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except json.JSONDecodeError as e:
            raise ApiError(code="BAD_RESPONSE", message=f"Invalid JSON from Gemini: {e}", http_status=500, status_code=502)
        return self._parse_response(data)

    # ---- 辅助方法 ----

    def _build_payload(self, req: ModelRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        live_parts: List[Dict[str, Any]] = []
        if req.live_text:
            live_parts.append({"text": req.live_text})
        if req.image_attachment is not None:
            live_parts.append(
                {
                    "inlineData": {
                        "mimeType": req.image_attachment.mime_type,
                        "data": base64.b64encode(req.image_attachment.data).decode("ascii"),
                    }
                }
            )
        contents = [{"role": "user", "parts": [{"text": req.prompt_text}]}]
        if live_parts:
            contents.append({"role": "user", "parts": live_parts})
        max_tokens = getattr(self._settings, "max_output_tokens", None) or model_cfg.max_tokens
        return {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": max_tokens,
                "temperature": model_cfg.default_temperature,
                "topP": model_cfg.top_p,
                "topK": model_cfg.top_k,
                "candidateCount": model_cfg.candidate_count,
                "stopSequences": self._stop_sequences,
            },
        }

    def _parse_response(self, data: Dict[str, Any]) -> ModelReply:
        candidates = data.get("candidates") or []
        usage = self._parse_usage(data.get("usageMetadata") or {})
        if not candidates:
            # 被安全策略拦截时只有 promptFeedback，没有候选
            feedback = data.get("promptFeedback") or {}
            return ModelReply(
                raw_text="",
                finish_reason=feedback.get("blockReason"),
                candidate_index=None,
                usage=usage,
                raw=data,
            )
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        return ModelReply(
            raw_text=text,
            finish_reason=candidate.get("finishReason"),
            candidate_index=candidate.get("index", 0),
            usage=usage,
            raw=data,
        )

    @staticmethod
    def _parse_usage(raw: Dict[str, Any]) -> Optional[ModelUsage]:
        if not raw:
            return None
        return ModelUsage(
            prompt_tokens=raw.get("promptTokenCount", 0),
            completion_tokens=raw.get("candidatesTokenCount", 0),
            total_tokens=raw.get("totalTokenCount", 0),
        )

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except json.JSONDecodeError:
            return resp.text or f"HTTP {resp.status_code}"
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return resp.text or f"HTTP {resp.status_code}"
