"""State definition for the message pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional, TypedDict

from relay_core.domain.chat import ChatSettings, MessageContext
from relay_core.domain.models import GenerationResult


class PipelineState(TypedDict, total=False):
    """State shared across pipeline nodes."""

    context: MessageContext
    chat_settings: Optional[ChatSettings]
    prompt: str
    result: Optional[GenerationResult]
    processing_time_ms: int
    record_payload: Optional[Dict[str, Any]]
    error: Optional[str]
    done: bool
