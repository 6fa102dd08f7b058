"""统一的对话与结果数据模型。

本模块定义了请求管线各阶段之间传递的标准数据结构：

- ChatTurn: 浏览器端保存的一条对话消息（只读）。
- HistoryEntry / HistoryWindow: 裁剪后的上下文窗口，每次请求重新计算。
- ModelRequest / ModelReply: 发给上游模型的请求与解析后的原始回复。
- ShapedReply / ContinuationContext: 经 ResponseShaper 处理后的最终结果。

Provider 适配器（如 GeminiClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional, Tuple


# 上下文窗口中的角色（浏览器端只有 isUser 布尔值）
Role = Literal["user", "assistant"]

# 续写上下文的类型：截断发生在代码块内部还是普通文本中
ContinuationKind = Literal["code", "prose"]

# 上游表示“因输出长度上限而截断”的 finish reason
FINISH_REASON_MAX_TOKENS = "MAX_TOKENS"


class SystemCommand(str, Enum):
    """浏览器消息中可识别的 / 命令。NONE 表示“不是命令”。"""

    NONE = ""
    HELP = "/help"
    CLEAR = "/clear"
    IMAGE = "/image"
    CODE = "/code"
    EXPLAIN = "/explain"
    CONTINUE = "/continue"


@dataclass(frozen=True)
class ChatTurn:
    """浏览器提交上来的一条历史消息。

    - text: 消息文本。
    - is_user: True 表示用户消息，False 表示助手消息。
    - timestamp: ISO8601 时间戳，仅透传，不参与计算。
    """

    text: str
    is_user: bool
    timestamp: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ChatTurn":
        text = payload.get("text")
        return cls(
            text=text if isinstance(text, str) else "",
            is_user=bool(payload.get("isUser", False)),
            timestamp=str(payload.get("timestamp") or ""),
        )


@dataclass(frozen=True)
class HistoryEntry:
    """上下文窗口中的一项。"""

    role: Role
    text: str


HistoryWindow = Tuple[HistoryEntry, ...]


@dataclass(frozen=True)
class ImageAttachment:
    """随消息上传的图片，以二进制形式发送给上游，从不内联进 prompt 文本。"""

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ModelRequest:
    """一次上游调用的完整请求，调用期间由 ModelInvoker 独占。

    - prompt_text: PromptAssembler 拼好的指令文本，作为对话的唯一前置轮次。
    - image_attachment: 可选图片。
    - live_text: 用户的原始消息，作为“当前轮”发送。
    - timeout: 本次尝试允许的最长秒数，为空时使用 Provider 自身的超时配置。
    """

    prompt_text: str
    image_attachment: Optional[ImageAttachment] = None
    live_text: str = ""
    timeout: Optional[float] = None


@dataclass
class ModelUsage:
    """上游返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ModelReply:
    """上游模型的一次回复。

    - raw_text: 候选回答的原始文本。
    - finish_reason: 上游结束原因，如 "STOP" / "MAX_TOKENS"。
    - candidate_index: 候选序号（candidateCount 固定为 1，通常为 0）。
    - usage / raw: 可选的统计信息与原始 JSON，用于日志。
    """

    raw_text: str
    finish_reason: Optional[str] = None
    candidate_index: Optional[int] = 0
    usage: Optional[ModelUsage] = None
    raw: Optional[dict] = None


@dataclass(frozen=True)
class ContinuationContext:
    """被截断回复的剩余上下文，供后续 /continue 调用续写。"""

    remaining_text: str
    kind: ContinuationKind

    def to_payload(self) -> Dict[str, Any]:
        return {"remainingText": self.remaining_text, "kind": self.kind}

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["ContinuationContext"]:
        """从浏览器回传的 JSON 解析；结构不对时返回 None。"""

        if not isinstance(payload, Mapping):
            return None
        text = payload.get("remainingText")
        if not isinstance(text, str) or not text:
            return None
        kind = payload.get("kind")
        return cls(remaining_text=text, kind="code" if kind == "code" else "prose")


@dataclass(frozen=True)
class ShapedReply:
    """ResponseShaper 的输出。

    - text: 最终返回给浏览器的文本。
    - has_more: 上游因长度上限截断时为 True，前端据此展示“继续生成”。
    - continuation: has_more 为 True 时的续写上下文。
    - is_continuation: 本次回复是否应拼接到上一条助手消息之后。
    """

    text: str
    has_more: bool = False
    continuation: Optional[ContinuationContext] = None
    is_continuation: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reply": self.text, "hasMore": self.has_more}
        if self.continuation is not None:
            payload["continuationContext"] = self.continuation.to_payload()
        if self.is_continuation:
            payload["isContinuation"] = True
        return payload


@dataclass(frozen=True)
class CommandReply:
    """系统命令的固定回复，不经过上游模型。"""

    reply: str
    clear_history: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"reply": self.reply, "hasMore": False}
        if self.clear_history:
            payload["clearHistory"] = True
        return payload


@dataclass(frozen=True)
class ValidatedInput:
    """InputValidator 的输出：已清洗的消息、可选图片以及识别出的命令。"""

    message: str
    image: Optional[ImageAttachment] = None
    command: SystemCommand = SystemCommand.NONE
