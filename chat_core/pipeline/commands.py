"""系统命令识别与固定回复。

以 ``/`` 开头的消息首个 token 会被解析成 SystemCommand；
无法识别的 token 一律视为 SystemCommand.NONE（“不是命令”），
消息按普通对话处理。
"""

from typing import Callable, Dict, Mapping, Optional

from chat_core.domain.models import CommandReply, SystemCommand


COMMAND_DESCRIPTIONS: Mapping[SystemCommand, str] = {
    SystemCommand.HELP: "Show this message",
    SystemCommand.CLEAR: "Clear chat history",
    SystemCommand.IMAGE: "Analyze attached image",
    SystemCommand.CODE: "Generate code example",
    SystemCommand.EXPLAIN: "Explain a concept in detail",
}


def parse_command(message: str) -> SystemCommand:
    """解析消息开头的命令；不是命令时返回 SystemCommand.NONE。"""

    stripped = (message or "").strip()
    if not stripped.startswith("/"):
        return SystemCommand.NONE
    token = stripped.split(maxsplit=1)[0].lower()
    try:
        return SystemCommand(token)
    except ValueError:
        return SystemCommand.NONE


def _help_reply() -> CommandReply:
    lines = ["Available commands:"]
    lines.extend(f"{cmd.value} - {desc}" for cmd, desc in COMMAND_DESCRIPTIONS.items())
    return CommandReply(reply="\n".join(lines))


def _clear_reply() -> CommandReply:
    return CommandReply(reply="Chat history cleared", clear_history=True)


# /image、/code、/explain 只在帮助中列出，没有专门的处理逻辑，
# 与 /continue 一样继续走普通的 prompt 组装流程。
COMMAND_HANDLERS: Dict[SystemCommand, Optional[Callable[[], CommandReply]]] = {
    SystemCommand.NONE: None,
    SystemCommand.HELP: _help_reply,
    SystemCommand.CLEAR: _clear_reply,
    SystemCommand.IMAGE: None,
    SystemCommand.CODE: None,
    SystemCommand.EXPLAIN: None,
    SystemCommand.CONTINUE: None,
}


def is_intercepted(command: SystemCommand) -> bool:
    """命令是否在校验阶段直接返回固定回复（不调用上游模型）。"""

    return COMMAND_HANDLERS[command] is not None


def command_reply(command: SystemCommand) -> CommandReply:
    handler = COMMAND_HANDLERS[command]
    if handler is None:
        raise KeyError(f"Command {command.value or '<none>'!r} has no canned reply")
    return handler()
