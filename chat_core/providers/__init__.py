"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (如 gemini_client)。
"""

from typing import Literal, Optional, Sequence

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ConfigurationError
from chat_core.providers.base import ProviderClient
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.registry import get_provider_config


def create_provider(
    name: Optional[str] = None,
    stop_sequences: Sequence[str] = ("User:",),
    cfg=None,
) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    cfg = cfg or settings
    provider_name = (name or getattr(cfg, "default_provider", "gemini")).lower()
    try:
        get_provider_config(provider_name)
    except KeyError as e:
        raise ConfigurationError(code="UNKNOWN_PROVIDER", message=str(e), http_status=500)
    return GeminiClient(cfg, stop_sequences=stop_sequences)


DefaultProviderName = Literal["gemini"]
