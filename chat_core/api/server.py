"""HTTP 接入层。

基于 FastAPI 暴露两个接口：

- POST /api/chat：表单提交（message / history / file / continuationContext），
  交给 service.run_chat 处理，响应体与状态码原样返回；
- GET /health：存活检查。
"""

from typing import Optional

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from chat_core.agents.chat_agent import ChatAgent
from chat_core.api import service
from chat_core.config.settings import settings
from chat_core.domain.models import ImageAttachment
from chat_core.infrastructure.logging.logger import logger
from chat_core.pipeline.rate_limiter import RateLimiter, resolve_client_identity


def _read_upload(upload: Optional[UploadFile], max_bytes: int) -> Optional[ImageAttachment]:
    # 浏览器在未选择文件时也可能提交一个空的 file 字段
    if upload is None or not upload.filename:
        return None
    # 多读一个字节，超限由 InputValidator 判定
    data = upload.file.read(max_bytes + 1)
    return ImageAttachment(data=data, mime_type=upload.content_type or "")


def create_app(
    agent: Optional[ChatAgent] = None,
    limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """创建 FastAPI 应用。

    agent / limiter 缺省时使用 service 中的进程级单例（按全局 settings 构建），
    测试可传入自己的实例；附件读取上限与所用 agent 的校验上限一致。
    """
    app = FastAPI(
        title="Chat Core",
        description="Chat relay to a hosted generative-language model",
        version="0.1.0",
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        logger.warning("Malformed chat request", extra={"extra": {"errors": str(exc.errors())}})
        return JSONResponse({"error": "Invalid request", "status": 400}, status_code=400)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/chat")
    def chat(
        request: Request,
        message: Optional[str] = Form(None),
        history: Optional[str] = Form(None),
        continuation_context: Optional[str] = Form(None, alias="continuationContext"),
        file: Optional[UploadFile] = File(None),
    ):
        identity = resolve_client_identity(
            request.headers,
            request.client.host if request.client else None,
        )
        result = service.run_chat(
            message=message,
            history=history,
            file=_read_upload(file, agent.max_file_bytes if agent is not None else settings.max_file_bytes),
            continuation_context=continuation_context,
            client_identity=identity,
            agent=agent,
            limiter=limiter,
        )
        return JSONResponse(result.payload, status_code=result.status, headers=result.headers)

    return app


def main() -> None:
    import uvicorn

    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
