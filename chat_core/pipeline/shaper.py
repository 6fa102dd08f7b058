"""回复整形。

对上游原始文本做后处理：

1. 空回复直接报 EmptyResponse，不做静默吞掉；
2. 连续 4 个及以上的反引号折叠成 3 个（模型偶尔会把代码块标记写重）；
3. 代码请求却没有任何代码块时，逐行包裹“像代码”的行；仍然没有时，
   用目标语言的 Hello World 示例兜底，保证代码请求不会只得到纯文本；
4. finish reason 为 MAX_TOKENS 时标记 has_more，并附带续写上下文。

整形是纯函数：相同输入永远得到相同输出。
"""

import re
from dataclasses import dataclass
from typing import Optional

from chat_core.domain.exceptions import EmptyResponse
from chat_core.domain.models import (
    FINISH_REASON_MAX_TOKENS,
    ContinuationContext,
    ContinuationKind,
    ModelReply,
    ShapedReply,
)


FENCE = "```"
_FENCE_RUN_RE = re.compile(r"`{4,}")

CODE_LINE_SIGNALS = ("=", "print", "console.", "function", "def ")

HELLO_WORLD_SNIPPETS = {
    "python": 'print("Hello, World!")',
    "javascript": 'console.log("Hello, World!");',
    "java": (
        "public class HelloWorld {\n"
        "    public static void main(String[] args) {\n"
        '        System.out.println("Hello, World!");\n'
        "    }\n"
        "}"
    ),
    "c++": (
        "#include <iostream>\n\n"
        "int main() {\n"
        '    std::cout << "Hello, World!" << std::endl;\n'
        "    return 0;\n"
        "}"
    ),
    "typescript": 'const greeting: string = "Hello, World!";\nconsole.log(greeting);',
    "html": "<!DOCTYPE html>\n<html>\n  <body>\n    <h1>Hello, World!</h1>\n  </body>\n</html>",
    "css": 'body::before {\n  content: "Hello, World!";\n}',
    "php": '<?php\necho "Hello, World!";',
    "ruby": 'puts "Hello, World!"',
}

_DISPLAY_NAMES = {
    "c++": "C++",
    "html": "HTML",
    "css": "CSS",
    "php": "PHP",
    "javascript": "JavaScript",
    "typescript": "TypeScript",
}


@dataclass(frozen=True)
class ShapeContext:
    """整形所需的分类信息，由 PromptAssembler 的结果得出。

    - prior_kind: 续写时上一段回复结束时所处的位置（代码块内 / 外）。
    """

    is_code_request: bool = False
    target_language: str = "python"
    is_continuation: bool = False
    prior_kind: Optional[ContinuationKind] = None


def collapse_fences(text: str) -> str:
    return _FENCE_RUN_RE.sub(FENCE, text)


def hello_world_fallback(language: str) -> str:
    snippet = HELLO_WORLD_SNIPPETS.get(language, HELLO_WORLD_SNIPPETS["python"])
    display = _DISPLAY_NAMES.get(language, language.capitalize())
    return (
        f"Here is a minimal {display} example:\n\n"
        f"{FENCE}{language}\n{snippet}\n{FENCE}\n\n"
        f'This program simply outputs "Hello, World!". '
        f"It is the smallest complete {display} example and a good starting point to build on."
    )


class ResponseShaper:
    def __init__(self, continuation_tail_chars: int = 1000):
        self._tail_chars = continuation_tail_chars

    def shape(self, reply: ModelReply, context: ShapeContext) -> ShapedReply:
        raw = reply.raw_text
        if not raw or not raw.strip():
            raise EmptyResponse(
                code="EMPTY_RESPONSE",
                message="The model returned an empty response. Please try again.",
                http_status=500,
            )
        text = collapse_fences(raw)
        # 续写片段保留行首缩进，它可能是代码块的中间部分
        text = text.strip("\n") if context.is_continuation else text.strip()

        if context.is_code_request and not context.is_continuation and FENCE not in text:
            text = self._wrap_code_lines(text, context.target_language)
            if FENCE not in text:
                text = hello_world_fallback(context.target_language)

        has_more = reply.finish_reason == FINISH_REASON_MAX_TOKENS
        continuation = None
        if has_more:
            continuation = ContinuationContext(
                remaining_text=text[-self._tail_chars:],
                kind=self._trailing_kind(text, context.prior_kind),
            )
        return ShapedReply(
            text=text,
            has_more=has_more,
            continuation=continuation,
            is_continuation=context.is_continuation,
        )

    @staticmethod
    def _wrap_code_lines(text: str, language: str) -> str:
        lines = []
        for line in text.split("\n"):
            if line.strip() and any(signal in line for signal in CODE_LINE_SIGNALS):
                lines.append(f"{FENCE}{language}\n{line}\n{FENCE}")
            else:
                lines.append(line)
        return "\n".join(lines)

    @staticmethod
    def _trailing_kind(text: str, prior_kind: Optional[ContinuationKind]) -> ContinuationKind:
        """根据代码块标记的奇偶性判断文本结尾是否处在未闭合的代码块中。"""

        inside = prior_kind == "code"
        if text.count(FENCE) % 2:
            inside = not inside
        return "code" if inside else "prose"
