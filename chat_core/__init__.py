"""Chat Core 顶层包。

该包实现浏览器聊天客户端背后的请求编排与回复整形管线，
包括输入校验、上下文裁剪、prompt 组装、带退避的上游调用、
代码块修复、限流以及对外的 HTTP 接口。
"""

from chat_core.agents.chat_agent import ChatAgent

__all__ = ["ChatAgent"]
