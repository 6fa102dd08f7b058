"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置，优先级依次降低。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class ChatSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(default="gemini", description="默认使用的 Provider 名称")
    default_model: str = Field(
        default="chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    google_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API 基础URL",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 人设 ----
    persona_name: str = Field(default="Ching", min_length=1, description="助手名字，同时用作停止序列")

    # ---- 输入校验 ----
    max_message_length: int = Field(default=2000, ge=1, description="单条消息最大字符数")
    max_file_bytes: int = Field(default=5 * 1024 * 1024, ge=1, description="图片附件大小上限（字节）")

    # ---- 上下文窗口 ----
    history_max_turns: int = Field(default=5, ge=1, le=50, description="上下文窗口保留的轮数")
    history_entry_max_chars: int = Field(default=500, ge=1, description="每条历史消息的最大字符数")
    prompt_history_turns: int = Field(default=3, ge=0, description="非代码请求写入 prompt 的历史条数")

    # ---- 生成与重试 ----
    max_output_tokens: int = Field(default=4096, ge=2048, le=8192, description="单次输出 token 上限")
    max_attempts: int = Field(default=3, ge=1, le=5, description="上游调用最大尝试次数（含首次）")
    retry_base_delay: float = Field(default=1.0, ge=0.0, description="指数退避基准延迟（秒）")
    turn_timeout_seconds: float = Field(default=60.0, ge=1.0, description="单轮对话的总耗时上限（秒）")
    overload_retry_after: int = Field(default=30, ge=1, description="上游过载时建议客户端等待的秒数")
    continuation_tail_chars: int = Field(default=1000, ge=50, description="续写上下文保留的尾部字符数")

    # ---- 限流 ----
    rate_limit_requests: int = Field(default=30, ge=1, description="每个窗口内每个客户端允许的请求数")
    rate_limit_window_seconds: float = Field(default=60.0, gt=0, description="限流窗口长度（秒）")

    # ---- HTTP 服务 ----
    host: str = Field(default="127.0.0.1", description="监听地址")
    port: int = Field(default=8000, ge=1, le=65535, description="监听端口")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("google_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = ChatSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = ChatSettings
