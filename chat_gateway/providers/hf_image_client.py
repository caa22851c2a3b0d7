"""文生图适配器。

- URL: {base_url}/hf-inference/models/{model}
- 请求体: {"inputs": prompt}
- 响应: 原始图片字节（Content-Type 为 image/*）

只发送提示词，不读写会话存储。
"""

from chat_gateway.config.settings import settings
from chat_gateway.domain.exceptions import BackendResponseError
from chat_gateway.domain.models import GeneratedImage, ImageRequest, ModelKind
from chat_gateway.infrastructure.logging.logger import logger
from chat_gateway.providers.base import base_url, post
from chat_gateway.providers.registry import ModelConfig


class ImageGenerationAdapter:
    kind: ModelKind = "image-generation"

    def __init__(self, model_cfg: ModelConfig, cfg=settings):
        self._model_cfg = model_cfg
        self._settings = cfg
        self.name = model_cfg.logical_name

    def invoke(self, request: ImageRequest) -> GeneratedImage:
        url = f"{base_url(self._settings)}/hf-inference/models/{self._model_cfg.provider_model}"
        logger.debug("image_request", extra={"extra": {"model": self.name}})
        resp = post(self._settings, url, {"inputs": request.prompt}, self.name)

        content_type = (resp.headers.get("content-type") or "image/png").split(";")[0].strip()
        if not content_type.startswith("image/"):
            # 服务端以 JSON 等形式返回了错误信息
            raise BackendResponseError(
                code="NOT_AN_IMAGE",
                message=f"expected image payload, got {content_type}: {resp.text[:200]}",
                provider=self.name,
            )
        if not resp.content:
            raise BackendResponseError(code="EMPTY_IMAGE", message="empty image payload", provider=self.name)
        return GeneratedImage(data=resp.content, content_type=content_type)
