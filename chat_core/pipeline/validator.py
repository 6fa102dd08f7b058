"""输入校验。

在任何网络调用之前检查消息与附件，并清洗掉可执行的标记内容，
保证回显到页面上也是安全的。系统命令在这里被识别并短路。
"""

from html.parser import HTMLParser
from typing import Any, List, Optional

from chat_core.domain.exceptions import InvalidFormat, PayloadTooLarge, TooLong, UnsupportedMediaType
from chat_core.domain.models import ImageAttachment, ValidatedInput
from chat_core.pipeline.commands import is_intercepted, parse_command


# 这些标签连同其内容一起丢弃；其余标签只去掉标签本身
EXECUTABLE_TAGS = frozenset({"script", "style", "iframe", "object", "noscript", "template"})


class _MarkupStripper(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in EXECUTABLE_TAGS:
            self._skip_depth += 1

    def handle_endtag(self, tag):
        if tag in EXECUTABLE_TAGS and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if not self._skip_depth:
            self._parts.append(data)

    def text(self) -> str:
        return "".join(self._parts)


def sanitize_message(message: str) -> str:
    """去掉 HTML 标签与脚本/样式内容，保留可见文本。"""

    stripper = _MarkupStripper()
    # & 先转义，解析后还原为用户原样输入的文本（Q&A、&amp; 都不变）
    stripper.feed(message.replace("&", "&amp;"))
    stripper.close()
    return stripper.text()


class InputValidator:
    """消息与附件的前置校验器。"""

    def __init__(self, max_message_length: int = 2000, max_file_bytes: int = 5 * 1024 * 1024):
        self._max_message_length = max_message_length
        self._max_file_bytes = max_file_bytes

    @property
    def max_file_bytes(self) -> int:
        return self._max_file_bytes

    def validate(self, raw_message: Any, raw_file: Optional[ImageAttachment] = None) -> ValidatedInput:
        """校验一次提交。

        Args:
            raw_message: 表单中的 message 字段，可能缺失或不是字符串。
            raw_file: 表单中的文件（已读出字节与声明的 MIME 类型）。

        Returns:
            ValidatedInput；若是 /help、/clear 等命令，image 为空且 command 已设置。

        Raises:
            InvalidFormat / TooLong / UnsupportedMediaType / PayloadTooLarge
        """
        has_file = raw_file is not None
        if not isinstance(raw_message, str):
            if not has_file:
                raise InvalidFormat(code="INVALID_FORMAT", message="Message is required")
            raw_message = ""
        if len(raw_message) > self._max_message_length:
            raise TooLong(
                code="MESSAGE_TOO_LONG",
                message=f"Message exceeds {self._max_message_length} characters",
            )

        message = sanitize_message(raw_message).strip()
        if not message and not has_file:
            raise InvalidFormat(code="INVALID_FORMAT", message="Message is required")

        command = parse_command(message)
        if is_intercepted(command):
            return ValidatedInput(message=message, command=command)

        if raw_file is not None:
            self._validate_file(raw_file)
        return ValidatedInput(message=message, image=raw_file, command=command)

    def _validate_file(self, attachment: ImageAttachment) -> None:
        if not (attachment.mime_type or "").lower().startswith("image/"):
            raise UnsupportedMediaType(code="UNSUPPORTED_MEDIA_TYPE", message="Only images are supported")
        if attachment.size > self._max_file_bytes:
            raise PayloadTooLarge(
                code="PAYLOAD_TOO_LARGE",
                message=f"Image exceeds {self._max_file_bytes // (1024 * 1024)} MB limit",
            )
