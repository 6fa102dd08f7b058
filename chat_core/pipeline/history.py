"""上下文窗口裁剪。"""

from typing import Sequence

from chat_core.domain.models import ChatTurn, HistoryEntry, HistoryWindow


class HistoryCompactor:
    """把浏览器传来的历史消息裁剪成固定大小的上下文窗口。

    - 只保留最后 max_turns 条，更早的消息直接丢弃；
    - 每条文本硬截断到 max_chars 个字符（不按句子切分）；
    - isUser 映射为 user / assistant。

    纯函数式：同样的输入永远得到同样的窗口。
    """

    def __init__(self, max_turns: int = 5, max_chars: int = 500):
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self._max_turns = max_turns
        self._max_chars = max_chars

    def compact(self, turns: Sequence[ChatTurn]) -> HistoryWindow:
        kept = list(turns)[-self._max_turns:]
        return tuple(
            HistoryEntry(
                role="user" if turn.is_user else "assistant",
                text=turn.text[: self._max_chars],
            )
            for turn in kept
        )
