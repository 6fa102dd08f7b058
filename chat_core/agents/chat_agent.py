"""对话管线编排。

一次提交严格按顺序执行：
InputValidator → HistoryCompactor → PromptAssembler → ModelInvoker → ResponseShaper。
/help、/clear 等命令在校验阶段短路，不会触达上游模型。
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence, Union
from uuid import uuid4

from chat_core.config.settings import Settings, settings
from chat_core.domain.models import (
    ChatTurn,
    CommandReply,
    ContinuationContext,
    ImageAttachment,
    ShapedReply,
    SystemCommand,
)
from chat_core.infrastructure.logging.logger import logger
from chat_core.pipeline.assembler import DEFAULT_LANGUAGE, PromptAssembler
from chat_core.pipeline.commands import command_reply, is_intercepted
from chat_core.pipeline.history import HistoryCompactor
from chat_core.pipeline.invoker import ModelInvoker
from chat_core.pipeline.shaper import ResponseShaper, ShapeContext
from chat_core.pipeline.validator import InputValidator
from chat_core.prompts import Persona, load_persona
from chat_core.providers import create_provider
from chat_core.providers.base import ProviderClient


ChatOutcome = Union[ShapedReply, CommandReply]


class ChatAgent:
    def __init__(
        self,
        validator: InputValidator,
        compactor: HistoryCompactor,
        assembler: PromptAssembler,
        invoker: ModelInvoker,
        shaper: ResponseShaper,
    ):
        self._validator = validator
        self._compactor = compactor
        self._assembler = assembler
        self._invoker = invoker
        self._shaper = shaper

    @property
    def max_file_bytes(self) -> int:
        """附件大小上限；HTTP 层据此决定最多读取多少字节。"""
        return self._validator.max_file_bytes

    @classmethod
    def from_settings(
        cls,
        cfg: Settings = settings,
        provider: Optional[ProviderClient] = None,
        persona: Optional[Persona] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ChatAgent":
        """按配置装配完整管线；provider/persona/sleep/clock 可替换（测试用）。"""

        persona = persona or load_persona(cfg.persona_name)
        provider = provider or create_provider(stop_sequences=persona.stop_sequences, cfg=cfg)
        return cls(
            validator=InputValidator(
                max_message_length=cfg.max_message_length,
                max_file_bytes=cfg.max_file_bytes,
            ),
            compactor=HistoryCompactor(
                max_turns=cfg.history_max_turns,
                max_chars=cfg.history_entry_max_chars,
            ),
            assembler=PromptAssembler(persona, history_turns=cfg.prompt_history_turns),
            invoker=ModelInvoker(
                provider,
                max_attempts=cfg.max_attempts,
                base_delay=cfg.retry_base_delay,
                turn_timeout=cfg.turn_timeout_seconds,
                overload_retry_after=cfg.overload_retry_after,
                attempt_timeout=cfg.http_timeout,
                sleep=sleep,
                clock=clock,
            ),
            shaper=ResponseShaper(continuation_tail_chars=cfg.continuation_tail_chars),
        )

    def handle(
        self,
        raw_message: Any,
        history: Sequence[ChatTurn] = (),
        raw_file: Optional[ImageAttachment] = None,
        continuation: Optional[ContinuationContext] = None,
    ) -> ChatOutcome:
        """处理一次提交。

        Args:
            raw_message: 表单中的 message 字段。
            history: 浏览器端保存的历史消息（按时间顺序）。
            raw_file: 可选图片附件。
            continuation: /continue 时浏览器回传的续写上下文。

        Returns:
            ShapedReply，或系统命令的 CommandReply。

        Raises:
            各种 domain.exceptions 中定义的异常
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}

        validated = self._validator.validate(raw_message, raw_file)
        if is_intercepted(validated.command):
            self._log(logging.INFO, "Handled system command", log_ctx, command=validated.command.value)
            return command_reply(validated.command)

        window = self._compactor.compact(history)
        if validated.command is SystemCommand.CONTINUE and continuation is not None:
            prompt = self._assembler.assemble_continuation(continuation, window)
            shape_ctx = ShapeContext(is_continuation=True, prior_kind=continuation.kind)
            live_text = ""
            image = None
        else:
            prompt = self._assembler.assemble(validated.message, window, validated.image is not None)
            shape_ctx = ShapeContext(
                is_code_request=prompt.is_code_request,
                target_language=prompt.language or DEFAULT_LANGUAGE,
            )
            live_text = validated.message
            image = validated.image
        self._log(
            logging.INFO,
            "Assembled prompt",
            log_ctx,
            history_entries=len(window),
            is_code_request=prompt.is_code_request,
            language=prompt.language,
            is_continuation=prompt.is_continuation,
            has_image=image is not None,
        )

        reply = self._invoker.invoke(prompt.text, image, live_text=live_text, log_ctx=log_ctx)
        shaped = self._shaper.shape(reply, shape_ctx)

        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            has_more=shaped.has_more,
            reply_chars=len(shaped.text),
        )
        return shaped

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
