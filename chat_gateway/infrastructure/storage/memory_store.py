"""进程内会话存储。

会话在首次访问时隐式创建，随进程存活，不做淘汰或持久化。
每个会话持有独立的锁：同一会话的 append 互斥，不同会话互不阻塞。
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from chat_gateway.domain.conversation import ConversationStore
from chat_gateway.domain.models import Message, Role


class _Session:
    __slots__ = ("lock", "messages")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.messages: List[Message] = []


class InMemoryConversationStore(ConversationStore):
    def __init__(self) -> None:
        self._sessions: Dict[str, _Session] = {}
        # 仅保护 _sessions 字典本身的创建操作
        self._registry_lock = threading.Lock()

    def get(self, session_key: str) -> Tuple[Message, ...]:
        session = self._session(session_key)
        with session.lock:
            return tuple(session.messages)

    def append(self, session_key: str, role: Role, text: str) -> Message:
        session = self._session(session_key)
        with session.lock:
            now = datetime.now(timezone.utc)
            if session.messages and now < session.messages[-1].timestamp:
                # 系统时钟回拨时沿用上一条的时间，保证会话内单调不减
                now = session.messages[-1].timestamp
            msg = Message(id=f"m-{uuid4().hex}", role=role, text=text, timestamp=now)
            session.messages.append(msg)
            return msg

    def session_keys(self) -> List[str]:
        with self._registry_lock:
            return list(self._sessions)

    def _session(self, session_key: str) -> _Session:
        session: Optional[_Session] = self._sessions.get(session_key)
        if session is not None:
            return session
        with self._registry_lock:
            return self._sessions.setdefault(session_key, _Session())
