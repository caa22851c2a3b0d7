"""对外 API 服务模块。

提供简化的函数接口供上层 HTTP 路由调用：

- handle_chat_turn: 对应 POST chat-turn。
- get_conversation: 对应 GET conversation，只读。
- error_response: 把异常转换为 (HTTP 状态码, {"error": {...}})。
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from chat_gateway.config.settings import settings
from chat_gateway.dispatch.dispatcher import Dispatcher
from chat_gateway.domain.exceptions import BusinessError
from chat_gateway.domain.models import TurnResult
from chat_gateway.infrastructure.logging.logger import logger
from chat_gateway.infrastructure.storage.memory_store import InMemoryConversationStore


_dispatcher: Optional[Dispatcher] = None


def get_default_dispatcher() -> Dispatcher:
    """获取进程内默认的 Dispatcher 实例（单例）。"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = Dispatcher(store=InMemoryConversationStore(), cfg=settings)
    return _dispatcher


def run_chat_turn(
    session_key: Optional[str],
    model_selector: Optional[str] = None,
    user_text: Optional[str] = None,
    image: Optional[str] = None,
    dispatcher: Optional[Dispatcher] = None,
) -> TurnResult:
    """执行一轮对话或一次文生图。

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    dispatcher = dispatcher or get_default_dispatcher()
    model = model_selector or getattr(dispatcher.settings, "default_model", "chat")
    try:
        return dispatcher.handle_turn(session_key, model, user_text, image)
    except Exception as e:
        logger.error(f"Chat turn failed: {e}", extra={"extra": {
            "session_key": session_key,
            "model": model,
            "error": str(e),
        }})
        raise


def handle_chat_turn(body: Mapping[str, Any], dispatcher: Optional[Dispatcher] = None) -> Dict[str, Any]:
    """处理 chat-turn 请求体。

    兼容的字段名：sessionId、model、userMessage / prompt、imageUrl / imageurl。

    Returns:
        聊天模型：{"reply", "conversationHistory"}
        文生图：{"image": bytes, "contentType"}
    """
    result = run_chat_turn(
        session_key=body.get("sessionId"),
        model_selector=body.get("model"),
        user_text=body.get("userMessage") or body.get("prompt"),
        image=body.get("imageUrl") or body.get("imageurl"),
        dispatcher=dispatcher,
    )
    if result.image is not None:
        return {"image": result.image.data, "contentType": result.image.content_type}
    return {
        "reply": result.reply,
        "conversationHistory": [m.to_dict() for m in result.history],
    }


def get_conversation(
    session_key: str,
    model_selector: Optional[str] = None,
    dispatcher: Optional[Dispatcher] = None,
) -> Dict[str, Any]:
    """获取会话的完整历史。

    历史只按会话 ID 索引，model_selector 仅用于日志。
    """
    dispatcher = dispatcher or get_default_dispatcher()
    logger.info("Read conversation", extra={"extra": {"session_key": session_key, "model": model_selector}})
    return {"conversationHistory": [m.to_dict() for m in dispatcher.get_history(session_key)]}


def error_response(exc: Exception) -> Tuple[int, Dict[str, Any]]:
    """把异常转换为结构化的失败响应。"""
    if isinstance(exc, BusinessError):
        return exc.http_status, {"error": {"kind": exc.kind, "code": exc.code, "message": exc.message}}
    return 500, {"error": {"kind": "internal", "code": "INTERNAL_ERROR", "message": str(exc)}}
