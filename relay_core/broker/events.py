"""广播事件类型与 SSE 编码。

每个事件序列化为一行 ``data: <json>\\n\\n``，JSON 中总是包含 type 与 timestamp：

- connected: 订阅建立时发送，带 clientId 与回显的 filters。
- ping: 心跳，保持连接不被中间层判定为空闲。
- llm_result: 一条处理结果，data 为结果 payload。
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union

# 结果 payload 中可用于订阅过滤的字段（wire 名）
MATCH_FIELDS = ("sessionId", "chatId", "userId", "provider", "model")

_SNAKE_TO_WIRE = {
    "session_id": "sessionId",
    "chat_id": "chatId",
    "user_id": "userId",
    "provider": "provider",
    "model": "model",
}


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SubscriptionFilter:
    """订阅过滤条件。为 None 的字段是通配；非 None 字段必须与事件值（按字符串）完全相等。"""

    session_id: Optional[str] = None
    chat_id: Optional[str] = None
    user_id: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SubscriptionFilter":
        """接受 camelCase（查询参数）或 snake_case 键，空字符串视为未设置。"""

        values: Dict[str, Optional[str]] = {}
        for snake, wire in _SNAKE_TO_WIRE.items():
            raw = data.get(wire, data.get(snake))
            values[snake] = str(raw) if raw not in (None, "") else None
        return cls(**values)

    def to_dict(self) -> Dict[str, str]:
        return {
            wire: getattr(self, snake)
            for snake, wire in _SNAKE_TO_WIRE.items()
            if getattr(self, snake) is not None
        }

    def matches(self, match_keys: Mapping[str, Any]) -> bool:
        for wire, expected in self.to_dict().items():
            actual = match_keys.get(wire)
            if actual is None or str(actual) != expected:
                return False
        return True


@dataclass
class ConnectedEvent:
    client_id: str
    filters: SubscriptionFilter
    timestamp: str = field(default_factory=_utcnow_iso)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "connected",
            "clientId": self.client_id,
            "filters": self.filters.to_dict(),
            "timestamp": self.timestamp,
        }


@dataclass
class HeartbeatEvent:
    timestamp: str = field(default_factory=_utcnow_iso)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "ping", "timestamp": self.timestamp}


@dataclass
class ResultEvent:
    payload: Dict[str, Any]
    timestamp: str = field(default_factory=_utcnow_iso)

    @property
    def match_keys(self) -> Dict[str, Any]:
        return {k: self.payload[k] for k in MATCH_FIELDS if self.payload.get(k) is not None}

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "llm_result", "data": self.payload, "timestamp": self.timestamp}


BroadcastEvent = Union[ConnectedEvent, HeartbeatEvent, ResultEvent]


def encode_sse(event: BroadcastEvent) -> str:
    return f"data: {json.dumps(event.to_wire(), ensure_ascii=False, default=str)}\n\n"
