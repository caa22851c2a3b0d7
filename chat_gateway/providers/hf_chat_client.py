"""聊天类模型适配器（OpenAI 兼容 chat/completions 接口）。

- URL: {base_url}/v1/chat/completions
- 认证: Authorization: Bearer <HF_TOKEN>

本模块负责：

1. 接收统一的 ChatRequest（已经带有合成的 system 消息）。
2. 将其转换为 chat/completions 请求体。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 从响应的 choices 中取第一条候选作为回复文本。

VisionChatAdapter 与 TextChatAdapter 的解析逻辑一致，
区别只在于会把图片（data URI）附加到最后一条 user 消息上。
"""

import json
from typing import Any, Dict, List, Optional

from chat_gateway.config.settings import settings
from chat_gateway.domain.exceptions import BackendResponseError
from chat_gateway.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage, ModelKind
from chat_gateway.infrastructure.logging.logger import logger
from chat_gateway.providers.base import base_url, post
from chat_gateway.providers.registry import ModelConfig


class TextChatAdapter:
    """文本聊天适配器：历史原样发送，取第一条候选的内容。"""

    kind: ModelKind = "text-chat"

    def __init__(self, model_cfg: ModelConfig, cfg=settings):
        self._model_cfg = model_cfg
        self._settings = cfg
        self.name = model_cfg.logical_name

    def invoke(self, request: ChatRequest) -> str:
        result = self.chat(request)
        if not result.choices:
            raise BackendResponseError(
                code="NO_CANDIDATES",
                message=f"{self.name} returned no candidates",
                provider=self.name,
            )
        content = result.choices[0].content
        if not isinstance(content, str):
            raise BackendResponseError(
                code="INVALID_CONTENT",
                message=f"{self.name} returned {type(content).__name__} content instead of text",
                provider=self.name,
            )
        return content

    def chat(self, request: ChatRequest) -> ChatResult:
        """执行一次非流式调用，返回解析后的 ChatResult。"""

        payload = self._build_payload(request)
        logger.debug(
            "chat_request",
            extra={"extra": {"model": self.name, "messages": len(payload["messages"])}},
        )
        resp = post(self._settings, f"{base_url(self._settings)}/v1/chat/completions", payload, self.name)
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise BackendResponseError(code="INVALID_JSON", message=str(e), provider=self.name)
        if not isinstance(data, dict):
            raise BackendResponseError(code="INVALID_RESPONSE", message="response is not an object", provider=self.name)
        return self._parse_response(data, request)

    # ---- 辅助方法 ----

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._model_cfg.routed_model,
            "messages": self._messages_to_payload(request.messages, request.image),
        }
        max_tokens = request.max_tokens or self._model_cfg.max_tokens
        if max_tokens:
            payload["max_tokens"] = max_tokens
        temperature = request.temperature if request.temperature is not None else self._model_cfg.default_temperature
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def _messages_to_payload(self, messages: List[ChatMessage], image: Optional[str]) -> List[Dict[str, Any]]:
        # 纯文本模型忽略图片
        return [{"role": m.role, "content": m.content} for m in messages]

    def _parse_response(self, data: dict, request: ChatRequest) -> ChatResult:
        choices_raw = data.get("choices") or []
        if not isinstance(choices_raw, list):
            raise BackendResponseError(
                code="INVALID_RESPONSE",
                message=f"choices is {type(choices_raw).__name__}, expected a list",
                provider=self.name,
            )
        choices: List[ChatChoice] = []
        for i, ch in enumerate(choices_raw):
            msg = ch.get("message") if isinstance(ch, dict) else None
            if not isinstance(msg, dict):
                raise BackendResponseError(
                    code="INVALID_CANDIDATE",
                    message=f"candidate {i} has no message",
                    provider=self.name,
                )
            choices.append(
                ChatChoice(
                    index=ch.get("index", i),
                    content=msg.get("content") or "",
                    finish_reason=ch.get("finish_reason"),
                )
            )
        usage_raw = data.get("usage")
        usage = None
        # usage 仅用于统计，格式异常时忽略
        if isinstance(usage_raw, dict) and usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatResult(model=request.model, choices=choices, usage=usage, raw=data)


class VisionChatAdapter(TextChatAdapter):
    """视觉聊天适配器。

    有图片时把最后一条 user 消息改写为多段内容：
    [{"type": "text", ...}, {"type": "image_url", ...}]；
    没有图片时与 TextChatAdapter 完全一致。
    """

    kind: ModelKind = "vision-chat"

    def _messages_to_payload(self, messages: List[ChatMessage], image: Optional[str]) -> List[Dict[str, Any]]:
        payload = super()._messages_to_payload(messages, None)
        if not image:
            return payload
        for entry in reversed(payload):
            if entry["role"] == "user":
                parts: List[Dict[str, Any]] = []
                if entry["content"]:
                    parts.append({"type": "text", "text": entry["content"]})
                parts.append({"type": "image_url", "image_url": {"url": image}})
                entry["content"] = parts
                return payload
        # 历史中没有 user 消息时单独追加一条携带图片的消息
        payload.append({"role": "user", "content": [{"type": "image_url", "image_url": {"url": image}}]})
        return payload
