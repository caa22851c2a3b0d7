"""Chat Gateway 顶层包。

该包提供多模型会话网关的核心实现，
包括配置加载、领域模型、会话存储、模型适配器与请求分发等能力。
"""

from chat_gateway.dispatch import Dispatcher
from chat_gateway.infrastructure.storage.memory_store import InMemoryConversationStore

__all__ = ["Dispatcher", "InMemoryConversationStore"]
