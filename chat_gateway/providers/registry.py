"""模型配置。

本模块将“逻辑模型名”与“推理服务上的模型 ID”解耦：

- 逻辑名（logical_name）：调用方使用的统一名称，例如 "chat"、"image"。
- provider_model：推理服务实际提供的模型 ID，例如 "meta-llama/Llama-3.1-8B-Instruct"。

每个逻辑模型同时声明自己的能力类型（kind）与固定的生成参数，
Dispatcher 只根据 kind 选择适配器，不在调用处按模型名分支。"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from chat_gateway.domain.exceptions import InvalidRequestError
from chat_gateway.domain.models import ModelKind


DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    kind: ModelKind
    provider_model: str
    max_tokens: Optional[int] = None
    default_temperature: Optional[float] = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    # 推理服务上的路由提供方，如 "hyperbolic"；为空时由服务自动选择
    inference_provider: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.kind == "image-generation"

    @property
    def routed_model(self) -> str:
        if self.inference_provider:
            return f"{self.provider_model}:{self.inference_provider}"
        return self.provider_model


LLAMA_CONFIG = ModelConfig(
    logical_name="chat",
    kind="text-chat",
    provider_model="meta-llama/Llama-3.1-8B-Instruct",
    max_tokens=500,
)

QWEN_CONFIG = ModelConfig(
    logical_name="qwen",
    kind="vision-chat",
    provider_model="Qwen/Qwen2.5-VL-7B-Instruct",
    inference_provider="hyperbolic",
)

GEMMA_CONFIG = ModelConfig(
    logical_name="gemma",
    kind="text-chat",
    provider_model="google/gemma-2-9b-it",
    max_tokens=1000,
    default_temperature=0.7,
    system_prompt="You are a helpful AI assistant.",
)

SDXL_CONFIG = ModelConfig(
    logical_name="image",
    kind="image-generation",
    provider_model="stabilityai/stable-diffusion-xl-base-1.0",
)


MODEL_REGISTRY: Mapping[str, ModelConfig] = {
    cfg.logical_name: cfg for cfg in (LLAMA_CONFIG, QWEN_CONFIG, GEMMA_CONFIG, SDXL_CONFIG)
}

# 兼容不同调用方使用的模型别名
MODEL_ALIASES: Dict[str, str] = {
    "text-chat": "chat",
    "llama": "chat",
    "vision-chat": "qwen",
    "generate-image": "image",
}


def get_model_config(selector: str) -> ModelConfig:
    """根据逻辑名或别名获取 ModelConfig，名称不区分大小写。"""

    key = (selector or "").strip().lower()
    key = MODEL_ALIASES.get(key, key)
    cfg = MODEL_REGISTRY.get(key)
    if cfg is None:
        raise InvalidRequestError(code="UNKNOWN_MODEL", message=f"Unknown model: {selector!r}")
    return cfg
