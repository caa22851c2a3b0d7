"""模型适配器抽象接口。

Dispatcher 不直接依赖推理服务的 HTTP 细节，而是依赖此协议：

- 每种后端能力（文本聊天 / 视觉聊天 / 文生图）实现一个 ModelAdapter。
- 负责：将统一请求转成具体 API 请求，并把响应解析为统一结果。

新增后端只需新增一个适配器，不需要修改 Dispatcher 的分发逻辑。
"""

from typing import Any, Dict, Protocol, Union

import httpx

from chat_gateway.domain.exceptions import BackendUnavailableError, RateLimitError
from chat_gateway.domain.models import ChatRequest, GeneratedImage, ImageRequest, ModelKind
from chat_gateway.infrastructure.logging.logger import logger


class ModelAdapter(Protocol):
    """模型适配器协议。

    - name: 适配器名称，用于日志。
    - kind: 能力类型，决定 invoke 接收的请求类型。
    - invoke(request): 聊天类返回回复文本，文生图返回 GeneratedImage。
    """

    name: str
    kind: ModelKind

    def invoke(self, request: Union[ChatRequest, ImageRequest]) -> Union[str, GeneratedImage]:
        ...


def auth_headers(cfg: Any, provider: str) -> Dict[str, str]:
    token = getattr(cfg, "hf_token", None)
    if not token:
        # 无法发起调用，归为后端不可用
        raise BackendUnavailableError(code="MISSING_API_KEY", message="HF_TOKEN not set", provider=provider)
    return {"Authorization": f"Bearer {token}"}


def post(cfg: Any, url: str, payload: Dict[str, Any], provider: str) -> httpx.Response:
    """发送一次 POST 请求，并把网络/HTTP 错误统一映射为 BackendUnavailableError。"""

    try:
        return _send(cfg, url, payload, provider)
    except BackendUnavailableError as e:
        logger.warning(
            "Provider call failed",
            extra={"extra": {"provider": provider, "code": e.code, "error": e.message}},
        )
        raise


def _send(cfg: Any, url: str, payload: Dict[str, Any], provider: str) -> httpx.Response:
    headers = auth_headers(cfg, provider)
    headers["Content-Type"] = "application/json"
    try:
        with httpx.Client(timeout=cfg.http_timeout, trust_env=False) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException as e:
        raise BackendUnavailableError(code="TIMEOUT", message=str(e) or "request timed out", provider=provider)
    except httpx.RequestError as e:
        # 网络错误：DNS 失败、连接被拒绝等
        raise BackendUnavailableError(code="NETWORK_ERROR", message=str(e), provider=provider)
    if resp.status_code == 429:
        raise RateLimitError(code="RATE_LIMIT", message=f"{provider} rate limit", provider=provider)
    if resp.status_code >= 400:
        raise BackendUnavailableError(
            code="API_ERROR",
            message=resp.text or f"HTTP {resp.status_code}",
            provider=provider,
            status_code=resp.status_code,
        )
    return resp


def base_url(cfg: Any) -> str:
    return (getattr(cfg, "hf_base_url", None) or "https://router.huggingface.co").rstrip("/")
