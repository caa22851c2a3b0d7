"""统一的会话与调用数据模型。

本模块定义了在会话存储、Dispatcher 与各个模型适配器之间共享的标准数据结构：

- Message: 会话中已存储的一条消息（不可变）。
- ChatMessage: 发给聊天类后端的一条 {role, content} 记录。
- ChatRequest / ChatResult: 聊天类适配器的统一请求与解析后的响应。
- ImageRequest / GeneratedImage: 文生图适配器的请求与二进制结果。
- TurnResult: Dispatcher 处理一轮对话后返回给调用方的结果。

所有适配器都只依赖这些模型，并负责在各自厂商 JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple


# 消息角色（与 OpenAI 兼容 chat/completions 接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]

# 适配器能力类型
ModelKind = Literal["text-chat", "vision-chat", "image-generation"]


@dataclass(frozen=True)
class Message:
    """会话中的一条消息，创建后不可修改。

    - id: 唯一标识（由存储生成）。
    - role: user / assistant；system 条目只在格式化时合成，不会被存储。
    - text: 纯文本内容，允许为空字符串。
    - timestamp: 创建时间（UTC），同一会话内单调不减。
    """

    id: str
    role: Role
    text: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ChatMessage:
    """发往后端的一条历史记录。"""

    role: Role
    content: str


@dataclass
class ChatRequest:
    """一次聊天类后端调用。

    model 为逻辑模型名（如 "chat"），由 registry 映射为厂商模型 ID。
    image 为调用方已编码好的 data URI，仅视觉模型会使用。
    """

    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    image: Optional[str] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答，只使用 index=0 的一条。"""

    index: int
    content: str
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """聊天类调用解析后的结果。raw 保存原始响应 JSON，便于调试。"""

    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None


@dataclass
class ImageRequest:
    """一次文生图调用，只包含提示词，不携带会话历史。"""

    model: str
    prompt: str


@dataclass
class GeneratedImage:
    """文生图结果：原始图片字节与其 MIME 类型。"""

    data: bytes
    content_type: str = "image/png"


@dataclass
class TurnResult:
    """Dispatcher 处理一轮请求的结果。

    聊天类模型填充 reply 与 history；文生图模型只填充 image。
    """

    model: str
    reply: Optional[str] = None
    history: Tuple[Message, ...] = field(default_factory=tuple)
    image: Optional[GeneratedImage] = None

    @property
    def is_image(self) -> bool:
        return self.image is not None
