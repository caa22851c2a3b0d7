"""系统提示词加载工具。

每个逻辑模型在 registry 中带有默认的 system prompt；
配置项 system_prompt 非空时统一覆盖所有模型的默认值。
"""

from typing import Optional

from chat_gateway.providers.registry import ModelConfig


def load_system_prompt(model_cfg: ModelConfig, override: Optional[str] = None) -> str:
    if override and override.strip():
        return override
    return model_cfg.system_prompt
