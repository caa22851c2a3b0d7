"""模型适配器集成层。

该包下的模块负责：
- 定义适配器抽象接口 (base)。
- 维护逻辑模型配置 (registry)。
- 提供各类能力的具体实现 (hf_chat_client、hf_image_client)。
"""

from typing import Callable, Dict

from chat_gateway.config.settings import settings
from chat_gateway.providers.base import ModelAdapter
from chat_gateway.providers.hf_chat_client import TextChatAdapter, VisionChatAdapter
from chat_gateway.providers.hf_image_client import ImageGenerationAdapter
from chat_gateway.providers.registry import ModelConfig, get_model_config


ADAPTER_TYPES: Dict[str, Callable[..., ModelAdapter]] = {
    "text-chat": TextChatAdapter,
    "vision-chat": VisionChatAdapter,
    "image-generation": ImageGenerationAdapter,
}


def create_adapter(model: "str | ModelConfig", cfg=None) -> ModelAdapter:
    """根据逻辑模型名（或 ModelConfig）创建对应能力的适配器实例。"""

    model_cfg = model if isinstance(model, ModelConfig) else get_model_config(model)
    return ADAPTER_TYPES[model_cfg.kind](model_cfg, cfg or settings)
