"""Relay Core 顶层包。

该包把聊天消息路由到可插拔的 LLM 后端（OpenAI、Claude、Mistral、Gemini 与自定义端点），
并通过进程内的 ResultBroker 以 SSE 事件的形式把结果推送给订阅者。
包括配置加载、领域模型、Provider 适配与注册表、消息处理流水线、结果广播与持久化存储。
"""

from relay_core.api.service import RelayService, get_default_service

__all__ = ["RelayService", "get_default_service"]
