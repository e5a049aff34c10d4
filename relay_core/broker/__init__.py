"""结果广播层：事件类型、投递通道、ResultBroker 与 LivenessSweeper。"""

from relay_core.broker.events import (
    ConnectedEvent,
    HeartbeatEvent,
    ResultEvent,
    SubscriptionFilter,
    encode_sse,
)
from relay_core.broker.result_broker import ResultBroker, Subscription
from relay_core.broker.sinks import DeliverySink, QueueSink
from relay_core.broker.sweeper import LivenessSweeper

__all__ = [
    "ConnectedEvent",
    "HeartbeatEvent",
    "ResultEvent",
    "SubscriptionFilter",
    "encode_sse",
    "ResultBroker",
    "Subscription",
    "DeliverySink",
    "QueueSink",
    "LivenessSweeper",
]
