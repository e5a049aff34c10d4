"""Anthropic Claude Provider 适配器。

Messages API：
- URL: https://api.anthropic.com/v1/messages
- 认证: x-api-key: <api_key>，并固定 anthropic-version: 2023-06-01

Claude 只有一个 system 槽位：第一条 system 消息提升为顶层 system 字段，
其余 system 消息不进入 messages；非 assistant 角色一律按 user 发送。
"""

from typing import Any, Dict, List, Optional, Tuple

from relay_core.domain.exceptions import UpstreamError
from relay_core.domain.models import ChatMessage, ChatUsage, GenerationOptions, GenerationResult
from relay_core.providers.base import BaseAdapter, first_system_message, resolve_options
from relay_core.providers.catalog import CLAUDE_MODELS

ANTHROPIC_VERSION = "2023-06-01"


class ClaudeAdapter(BaseAdapter):
    name = "claude"
    label = "Claude"
    endpoint = "https://api.anthropic.com/v1/messages"
    models = CLAUDE_MODELS

    def _build_request(
        self,
        messages: List[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions],
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        temperature, max_tokens, top_p = resolve_options(options)
        system = first_system_message(messages)
        payload: Dict[str, Any] = {
            "model": model_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": top_p,
            "messages": [
                {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
                for m in messages
                if m.role != "system"
            ],
        }
        if system and system.content:
            payload["system"] = system.content
        headers = {
            "x-api-key": self._config.api_key,
            "Content-Type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        return self._config.base_url or self.endpoint, headers, payload

    def _parse_response(self, data: Dict[str, Any], model_id: str) -> GenerationResult:
        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise UpstreamError(code="MALFORMED_RESPONSE", message="Missing content in Claude response")
        text = ""
        if blocks and isinstance(blocks[0], dict):
            text = blocks[0].get("text") or ""
        if not text:
            raise UpstreamError(code="EMPTY_RESPONSE", message="Empty response content")
        usage_raw = data.get("usage") or {}
        input_tokens = usage_raw.get("input_tokens", 0) or 0
        output_tokens = usage_raw.get("output_tokens", 0) or 0
        return GenerationResult(
            success=True,
            provider=self.name,
            content=text,
            usage=ChatUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
            model=model_id,
        )
