from typing import List, Protocol, Sequence

from .models import ChatMessage, Message, Role


class ConversationStore(Protocol):
    """按会话 ID 保存有序消息序列的存储协议。

    - get: 返回会话的消息快照（可能为空），首次访问时隐式创建会话。
    - append: 生成新消息并追加到会话末尾，单次调用是原子的。
    """

    def get(self, session_key: str) -> Sequence[Message]:
        ...

    def append(self, session_key: str, role: Role, text: str) -> Message:
        ...


def format_history(store: ConversationStore, session_key: str, system_prompt: str) -> List[ChatMessage]:
    """把会话消息投影为后端所需的 {role, content} 序列。

    第 0 条总是合成的 system 消息，随后按存储顺序逐条对应。
    不修改存储，也不做任何厂商相关的转换。
    """

    history = [ChatMessage(role="system", content=system_prompt)]
    for m in store.get(session_key):
        history.append(ChatMessage(role=m.role, content=m.text))
    return history
