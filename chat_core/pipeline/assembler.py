"""Prompt 组装。

根据消息内容判断是否为“代码请求”，分别生成两种指令模板；
续写请求使用单独的模板。图片只作为独立的二进制部分发送，
prompt 文本里只说明“附带了一张图片”。
"""

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from chat_core.domain.models import ContinuationContext, HistoryEntry, SystemCommand
from chat_core.prompts import Persona


CODE_KEYWORDS = (
    "code",
    "program",
    "function",
    "script",
    "example",
    "hello world",
    "write",
    "create",
    "implement",
    "generate",
    "show me",
)

# 按列表顺序取第一个命中的 token；按整 token 匹配，"javascript" 不会命中 java
SUPPORTED_LANGUAGES = ("python", "javascript", "java", "c++", "typescript", "html", "css", "php", "ruby")
DEFAULT_LANGUAGE = "python"

_LANGUAGE_TOKEN_RE = re.compile(r"[a-z0-9+#]+")


def is_code_request(message: str) -> bool:
    """关键字命中任意空白分隔 token（多词关键字按整句匹配），或以 /code 开头。"""

    lowered = (message or "").lower()
    if lowered.lstrip().startswith(SystemCommand.CODE.value):
        return True
    tokens = lowered.split()
    for keyword in CODE_KEYWORDS:
        if " " in keyword:
            if keyword in lowered:
                return True
        elif any(keyword in token for token in tokens):
            return True
    return False


def detect_language(message: str) -> str:
    tokens = set(_LANGUAGE_TOKEN_RE.findall((message or "").lower()))
    for language in SUPPORTED_LANGUAGES:
        if language in tokens:
            return language
    return DEFAULT_LANGUAGE


@dataclass(frozen=True)
class AssembledPrompt:
    """组装结果：prompt 文本以及后续整形需要的分类信息。"""

    text: str
    is_code_request: bool
    language: Optional[str] = None
    is_continuation: bool = False


class PromptAssembler:
    def __init__(self, persona: Persona, history_turns: int = 3):
        self._persona = persona
        self._history_turns = history_turns

    @property
    def persona(self) -> Persona:
        return self._persona

    def assemble(
        self,
        message: str,
        window: Sequence[HistoryEntry],
        is_image_attached: bool = False,
    ) -> AssembledPrompt:
        if is_code_request(message):
            language = detect_language(message)
            return AssembledPrompt(
                text=self._code_prompt(message, language, is_image_attached),
                is_code_request=True,
                language=language,
            )
        return AssembledPrompt(
            text=self._chat_prompt(message, window, is_image_attached),
            is_code_request=False,
        )

    def assemble_continuation(
        self,
        context: ContinuationContext,
        window: Sequence[HistoryEntry],
    ) -> AssembledPrompt:
        """为被截断的回复生成续写 prompt，不重复已输出的内容。"""

        if context.kind == "code":
            instruction = (
                "Your previous answer was cut off inside a code block. Continue the code exactly "
                "where it stopped, without repeating anything and without opening a new code block, "
                "then close the block with ``` and finish the explanation."
            )
        else:
            instruction = (
                "Your previous answer was cut off. Continue exactly where it stopped, "
                "without repeating anything that was already written."
            )
        parts = [self._persona.preamble]
        history = self._render_history(window)
        if history:
            parts.append(f"Previous conversation:\n{history}")
        parts.append(f"{instruction}\n\nThe answer so far ended with:\n{context.remaining_text}")
        return AssembledPrompt(
            text="\n\n".join(parts),
            is_code_request=False,
            is_continuation=True,
        )

    # ---- 模板 ----

    def _code_prompt(self, message: str, language: str, is_image_attached: bool) -> str:
        lines = [
            self._persona.preamble,
            "",
            f"The user asked for {language} code: {message}",
        ]
        if is_image_attached:
            lines.append("An image is attached to this message; use it if it is relevant.")
        lines.extend([
            "",
            "Answer in exactly this structure:",
            "1. A short prose explanation of what the code will do.",
            f"2. Exactly one fenced code block that starts with ```{language} and ends with ```.",
            "3. A line-by-line explanation of the code after the block.",
        ])
        return "\n".join(lines)

    def _chat_prompt(self, message: str, window: Sequence[HistoryEntry], is_image_attached: bool) -> str:
        parts = [self._persona.preamble]
        history = self._render_history(window)
        if history:
            parts.append(f"Previous conversation:\n{history}")
        new_message = f"User's new message: {message}"
        if is_image_attached:
            new_message += "\n(An image is attached to this message.)"
        parts.append(new_message)
        return "\n\n".join(parts)

    def _render_history(self, window: Sequence[HistoryEntry]) -> str:
        if self._history_turns <= 0:
            return ""
        recent = list(window)[-self._history_turns:]
        lines = []
        for entry in recent:
            label = "User" if entry.role == "user" else self._persona.name
            lines.append(f"{label}: {entry.text}")
        return "\n".join(lines)
