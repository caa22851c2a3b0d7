"""对话分发核心模块。

一轮请求的处理流程：
校验输入 → 记录 user 消息 → 格式化历史 → 调用适配器 → 记录 assistant 消息 → 返回结果。

后端调用失败时 user 消息保留在会话中，不会记录 assistant 消息；
文生图请求完全绕过会话存储。
"""

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from chat_gateway.config.settings import settings
from chat_gateway.domain.conversation import ConversationStore, format_history
from chat_gateway.domain.exceptions import BackendResponseError, BusinessError, InvalidRequestError
from chat_gateway.domain.models import (
    ChatMessage,
    ChatRequest,
    GeneratedImage,
    ImageRequest,
    Message,
    TurnResult,
)
from chat_gateway.infrastructure.logging.logger import logger
from chat_gateway.prompts import load_system_prompt
from chat_gateway.providers import create_adapter
from chat_gateway.providers.base import ModelAdapter
from chat_gateway.providers.registry import ModelConfig, get_model_config


class Dispatcher:
    def __init__(
        self,
        store: ConversationStore,
        adapters: Optional[Mapping[str, ModelAdapter]] = None,
        cfg=settings,
    ):
        """初始化 Dispatcher。

        Args:
            store: 会话存储实例
            adapters: 逻辑模型名 -> 适配器，未提供的模型按需通过 create_adapter 创建
            cfg: 配置对象（system_prompt、max_context_messages 等）
        """
        self._store = store
        self._adapters: Dict[str, ModelAdapter] = dict(adapters or {})
        self._settings = cfg

    def handle_turn(
        self,
        session_key: Optional[str],
        model_selector: str,
        user_text: Optional[str] = None,
        image: Optional[str] = None,
    ) -> TurnResult:
        """处理一轮请求。

        Args:
            session_key: 会话ID（文生图可为空）
            model_selector: 逻辑模型名或别名
            user_text: 用户输入；文生图时作为提示词
            image: 调用方编码好的图片 data URI（可选）

        Returns:
            聊天模型返回回复与更新后的完整历史；文生图只返回图片。

        Raises:
            InvalidRequestError: 输入不合法，此时未发生任何状态变更
            BackendUnavailableError / BackendResponseError: 适配器调用失败
        """
        model_cfg = get_model_config(model_selector)
        self._validate(model_cfg, session_key, user_text, image)

        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "model": model_cfg.logical_name,
        }
        if not model_cfg.is_image:
            log_ctx["session_key"] = session_key
        self._log(logging.INFO, "Turn started", log_ctx, kind=model_cfg.kind, has_image=bool(image))
        if model_cfg.is_image:
            return self._generate_image(model_cfg, user_text or "", log_ctx)
        return self._chat(model_cfg, session_key or "", user_text or "", image, log_ctx)

    @property
    def settings(self):
        return self._settings

    def get_history(self, session_key: str) -> Tuple[Message, ...]:
        return tuple(self._store.get(session_key))

    def adapter_for(self, model_cfg: ModelConfig) -> ModelAdapter:
        adapter = self._adapters.get(model_cfg.logical_name)
        if adapter is None:
            adapter = self._adapters.setdefault(
                model_cfg.logical_name, create_adapter(model_cfg, self._settings)
            )
        return adapter

    # ---- 内部流程 ----

    @staticmethod
    def _validate(
        model_cfg: ModelConfig,
        session_key: Optional[str],
        user_text: Optional[str],
        image: Optional[str],
    ) -> None:
        if model_cfg.is_image:
            if not user_text:
                raise InvalidRequestError(code="MISSING_PROMPT", message="prompt required")
            return
        if not session_key:
            raise InvalidRequestError(code="MISSING_SESSION", message="sessionId required")
        if not user_text and not image:
            raise InvalidRequestError(code="MISSING_INPUT", message="Provide text or image")

    def _chat(
        self,
        model_cfg: ModelConfig,
        session_key: str,
        user_text: str,
        image: Optional[str],
        log_ctx: Dict[str, Any],
    ) -> TurnResult:
        start_time = time.time()
        user_msg = self._store.append(session_key, "user", user_text)
        self._log(logging.INFO, "Stored user message", log_ctx, message_id=user_msg.id)

        system_prompt = load_system_prompt(model_cfg, getattr(self._settings, "system_prompt", None))
        history = self._trim(format_history(self._store, session_key, system_prompt), log_ctx)

        if image and model_cfg.kind != "vision-chat":
            self._log(logging.WARNING, "Image ignored by text-only model", log_ctx)
            image = None
        request = ChatRequest(
            model=model_cfg.logical_name,
            messages=history,
            temperature=model_cfg.default_temperature,
            max_tokens=model_cfg.max_tokens,
            image=image,
        )

        reply = self._invoke(model_cfg, request, log_ctx)
        if not isinstance(reply, str):
            raise self._response_error(
                log_ctx,
                "INVALID_REPLY",
                f"{model_cfg.logical_name} returned {type(reply).__name__} instead of text",
            )

        assistant_msg = self._store.append(session_key, "assistant", reply)
        self._log(
            logging.INFO,
            "Completed chat turn",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            assistant_message_id=assistant_msg.id,
        )
        return TurnResult(
            model=model_cfg.logical_name,
            reply=reply,
            history=self.get_history(session_key),
        )

    def _generate_image(self, model_cfg: ModelConfig, prompt: str, log_ctx: Dict[str, Any]) -> TurnResult:
        start_time = time.time()
        result = self._invoke(model_cfg, ImageRequest(model=model_cfg.logical_name, prompt=prompt), log_ctx)
        if not isinstance(result, GeneratedImage):
            raise self._response_error(
                log_ctx,
                "INVALID_IMAGE",
                f"{model_cfg.logical_name} returned {type(result).__name__} instead of an image",
            )
        self._log(
            logging.INFO,
            "Generated image",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            bytes=len(result.data),
        )
        return TurnResult(model=model_cfg.logical_name, image=result)

    def _invoke(self, model_cfg: ModelConfig, request, log_ctx: Dict[str, Any]):
        adapter = self.adapter_for(model_cfg)
        try:
            return adapter.invoke(request)
        except BusinessError as e:
            self._log(logging.ERROR, f"Backend call failed: {e.message}", log_ctx, kind=e.kind, code=e.code)
            raise
        except Exception as e:
            self._log(logging.ERROR, f"Backend call failed: {e}", log_ctx, kind="internal")
            raise

    def _response_error(self, log_ctx: Dict[str, Any], code: str, message: str) -> BackendResponseError:
        self._log(logging.ERROR, f"Backend call failed: {message}", log_ctx, kind=BackendResponseError.kind, code=code)
        return BackendResponseError(code=code, message=message)

    def _trim(self, history: List[ChatMessage], log_ctx: Dict[str, Any]) -> List[ChatMessage]:
        max_context = getattr(self._settings, "max_context_messages", None)
        if not max_context or len(history) - 1 <= max_context:
            return history
        trimmed = len(history) - 1 - max_context
        self._log(logging.INFO, "Truncated context", log_ctx, max_context=max_context, trimmed=trimmed)
        return [history[0]] + history[-max_context:]

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
