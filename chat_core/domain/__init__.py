"""领域层模型与异常。

包含：
- models: ChatTurn / ModelRequest / ModelReply / ShapedReply 等管线数据模型。
- exceptions: 业务异常类型定义。
"""
