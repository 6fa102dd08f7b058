"""请求编排管线。

各阶段按顺序执行：
- validator: 输入校验与系统命令拦截。
- history: 上下文窗口裁剪。
- assembler: prompt 组装（代码请求 / 普通对话 / 续写）。
- invoker: 带指数退避的上游调用。
- shaper: 回复整形（代码块修复、截断检测）。
- rate_limiter: 管线入口前的按客户端限流。
"""
