"""LangGraph construction and node implementations for incoming chat messages.

gate -> generate -> publish，任一环节失败时在 state["error"] 中记录原因并直接结束。
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from relay_core.broker.result_broker import ResultBroker
from relay_core.domain.chat import (
    ChatSettingsRepository,
    LLMResultRecord,
    MessageContext,
    ResultRepository,
)
from relay_core.domain.exceptions import BusinessError
from relay_core.domain.models import ChatMessage, GenerationOptions
from relay_core.flows.state import PipelineState
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers import create_provider
from relay_core.providers.registry import ProviderRegistry

PIPELINE_OPTIONS = GenerationOptions(temperature=0.7, max_tokens=1000)


def render_prompt(template: str, context: MessageContext) -> str:
    """替换提示模板中的 {message} {sender} {chat} {timestamp}，其余花括号原样保留。"""

    stamp = datetime.fromtimestamp(context.timestamp or 0, tz=timezone.utc)
    values = {
        "{message}": context.message,
        "{sender}": context.sender or "Unknown",
        "{chat}": context.chat or "",
        "{timestamp}": stamp.isoformat().replace("+00:00", "Z"),
    }
    rendered = template or ""
    for token, value in values.items():
        rendered = rendered.replace(token, value)
    return rendered


def _fail(state: PipelineState, error: str) -> PipelineState:
    state["error"] = error
    state["done"] = True
    return state


def gate_node(state: PipelineState, settings_repo: ChatSettingsRepository) -> PipelineState:
    ctx = state["context"]
    chat_settings = settings_repo.get_chat_settings(ctx.session_id, ctx.chat_id)
    state["chat_settings"] = chat_settings
    if chat_settings is None or not chat_settings.llm_enabled:
        logger.info(
            "pipeline.skipped",
            extra={"extra": {"session_id": ctx.session_id, "chat_id": ctx.chat_id, "reason": "disabled"}},
        )
        return _fail(state, "LLM not enabled for this chat")

    keywords = [k for k in chat_settings.keywords if k]
    if keywords:
        lowered = (ctx.message or "").lower()
        if not any(k.lower() in lowered for k in keywords):
            logger.info(
                "pipeline.skipped",
                extra={"extra": {"session_id": ctx.session_id, "chat_id": ctx.chat_id, "reason": "keywords"}},
            )
            return _fail(state, "Message does not match keywords")
    return state


def generate_node(state: PipelineState, registry: ProviderRegistry) -> PipelineState:
    ctx = state["context"]
    chat_settings = state["chat_settings"]
    try:
        adapter = create_provider(chat_settings.provider, registry, chat_settings.custom_config)
    except BusinessError as exc:
        logger.warning(
            "pipeline.provider_unavailable",
            extra={"extra": {"provider": chat_settings.provider, "error": exc.message}},
        )
        return _fail(state, f"Provider {chat_settings.provider} not available or not configured")

    prompt = render_prompt(chat_settings.prompt, ctx)
    state["prompt"] = prompt
    messages = []
    if prompt:
        messages.append(ChatMessage(role="system", content=prompt))
    messages.append(ChatMessage(role="user", content=ctx.message))

    started = time.monotonic()
    result = adapter.generate_response(messages, chat_settings.model, PIPELINE_OPTIONS)
    state["processing_time_ms"] = int((time.monotonic() - started) * 1000)
    state["result"] = result
    logger.info(
        "pipeline.generated",
        extra={"extra": {
            "provider": result.provider,
            "model": chat_settings.model,
            "success": result.success,
            "processing_time_ms": state["processing_time_ms"],
        }},
    )
    if not result.success:
        return _fail(state, result.error or "Unknown error")
    return state


def publish_node(
    state: PipelineState,
    results_repo: Optional[ResultRepository],
    broker: ResultBroker,
) -> PipelineState:
    ctx = state["context"]
    chat_settings = state["chat_settings"]
    result = state["result"]
    record = LLMResultRecord(
        id=f"r-{uuid4().hex}",
        session_id=str(ctx.session_id),
        chat_id=str(ctx.chat_id),
        user_id=str(ctx.sender_id),
        message_id=ctx.message_id,
        provider=chat_settings.provider,
        model=chat_settings.model,
        prompt=state.get("prompt", ""),
        response=result.content,
        error=None,
        processing_time_ms=state.get("processing_time_ms", 0),
        created_at=datetime.now(timezone.utc),
        chat_title=ctx.chat or None,
    )
    if results_repo is not None:
        try:
            results_repo.save_result(record)
        except BusinessError as exc:
            logger.error(
                "pipeline.save_failed",
                extra={"extra": {"result_id": record.id, "code": exc.code, "error": exc.message}},
            )

    payload = record.to_payload()
    delivered = broker.publish_result(payload)
    state["record_payload"] = payload
    state["done"] = True
    logger.info("pipeline.published", extra={"extra": {"result_id": record.id, "delivered": delivered}})
    return state


def pipeline_router(state: PipelineState) -> str:
    if state.get("done"):
        return "end"
    return "next"


def build_graph(
    registry: ProviderRegistry,
    settings_repo: ChatSettingsRepository,
    results_repo: Optional[ResultRepository],
    broker: ResultBroker,
) -> CompiledStateGraph:
    graph = StateGraph(PipelineState)
    graph.add_node("gate", lambda s: gate_node(s, settings_repo))
    graph.add_node("generate", lambda s: generate_node(s, registry))
    graph.add_node("publish", lambda s: publish_node(s, results_repo, broker))
    graph.set_entry_point("gate")
    graph.add_conditional_edges("gate", pipeline_router, {"next": "generate", "end": END})
    graph.add_conditional_edges("generate", pipeline_router, {"next": "publish", "end": END})
    graph.add_edge("publish", END)
    return graph.compile()
