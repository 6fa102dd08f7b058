"""Gemini 模型配置。

代码里只使用逻辑模型名 "chat"，这里把它映射到具体的 Gemini 模型 ID，
并固定每次调用的采样参数（temperature 0.7、topP 0.8、topK 40、单候选）。
这些参数不随请求变化，也不从配置文件读取；只有输出 token 上限可由
settings.max_output_tokens 覆盖。
"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass(frozen=True)
class ModelConfig:
    """单个逻辑模型的配置（生成参数固定）。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float
    top_p: float
    top_k: int
    candidate_count: int = 1


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


GEMINI_CONFIG = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta",
    models={
        "chat": ModelConfig(
            logical_name="chat",
            provider_model="gemini-1.5-flash-latest",
            max_tokens=4096,
            default_temperature=0.7,
            top_p=0.8,
            top_k=40,
        )
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "gemini": GEMINI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """按名称（不区分大小写）查找 Provider；未注册时抛出 KeyError。"""

    try:
        return PROVIDER_REGISTRY[name.lower()]
    except KeyError:
        raise KeyError(f"Unknown provider: {name!r}") from None
