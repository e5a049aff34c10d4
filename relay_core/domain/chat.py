from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol


@dataclass
class ChatSettings:
    """单个聊天的 LLM 处理设置。

    keywords 为空表示处理所有消息；prompt 为系统提示模板，
    支持 {message} {sender} {chat} {timestamp} 占位符。
    custom_config 仅在 provider == "custom" 时使用，结构见 CustomEndpointConfig.from_dict。
    """

    llm_enabled: bool = False
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    prompt: str = ""
    auto_reply: bool = False
    keywords: List[str] = field(default_factory=list)
    notifications: bool = True
    custom_config: Optional[Dict[str, Any]] = None


@dataclass
class MessageContext:
    """一条待处理的消息及其来源。timestamp 为 Unix 秒。"""

    message: str
    session_id: str
    chat_id: str
    sender: str = "Unknown"
    sender_id: str = "unknown"
    chat: str = ""
    timestamp: int = 0
    message_id: Optional[str] = None


@dataclass
class LLMResultRecord:
    id: str
    session_id: str
    chat_id: str
    user_id: str
    message_id: Optional[str]
    provider: str
    model: str
    prompt: str
    response: Optional[str]
    error: Optional[str]
    processing_time_ms: int
    created_at: datetime
    chat_title: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """广播用的 camelCase 结构，同时包含订阅过滤所需的字段。"""

        return {
            "id": self.id,
            "messageId": self.message_id,
            "chatId": self.chat_id,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "provider": self.provider,
            "model": self.model,
            "response": self.response,
            "prompt": self.prompt,
            "processingTime": self.processing_time_ms,
            "chatTitle": self.chat_title,
            "createdAt": self.created_at.isoformat().replace("+00:00", "Z"),
        }


class ChatSettingsRepository(Protocol):
    def get_chat_settings(self, session_id: str, chat_id: str) -> Optional[ChatSettings]:
        ...


class ResultRepository(Protocol):
    def save_result(self, record: LLMResultRecord) -> None:
        ...

    def list_results(
        self, session_id: str, chat_id: Optional[str] = None, limit: int = 50
    ) -> List[LLMResultRecord]:
        ...

    def latest(self, limit: int = 20) -> List[LLMResultRecord]:
        ...

    def stats(self, session_id: str) -> Dict[str, Any]:
        ...


class InMemoryChatSettingsRepository:
    """进程内的聊天设置仓库，键为 (session_id, chat_id)。"""

    def __init__(self, initial: Optional[Dict[tuple, ChatSettings]] = None):
        self._items: Dict[tuple, ChatSettings] = dict(initial or {})

    def get_chat_settings(self, session_id: str, chat_id: str) -> Optional[ChatSettings]:
        return self._items.get((str(session_id), str(chat_id)))

    def set_chat_settings(self, session_id: str, chat_id: str, chat_settings: ChatSettings) -> None:
        self._items[(str(session_id), str(chat_id))] = chat_settings
