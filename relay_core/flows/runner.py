"""High-level entry point for the message pipeline."""

from __future__ import annotations

from typing import Any, Dict

from langgraph.graph.state import CompiledStateGraph

from relay_core.domain.chat import MessageContext
from relay_core.flows.state import PipelineState


def run_pipeline(graph: CompiledStateGraph, context: MessageContext) -> Dict[str, Any]:
    """Execute the pipeline for one message.

    Returns:
        成功时 {"success": True, "response", "processingTime", "result"}；
        被过滤或失败时 {"success": False, "error"}。
    """

    state: PipelineState = {
        "context": context,
        "chat_settings": None,
        "prompt": "",
        "result": None,
        "processing_time_ms": 0,
        "record_payload": None,
        "error": None,
        "done": False,
    }
    final = graph.invoke(state)
    if final.get("error"):
        return {"success": False, "error": final["error"]}
    payload = final.get("record_payload") or {}
    return {
        "success": True,
        "response": payload.get("response"),
        "processingTime": final.get("processing_time_ms", 0),
        "result": payload,
    }
