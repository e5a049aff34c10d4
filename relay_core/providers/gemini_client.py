"""Google Gemini Provider 适配器。

generateContent 端点，API key 作为 URL 查询参数传递：
https://generativelanguage.googleapis.com/v1beta/models/<model>:generateContent?key=<api_key>

角色映射：assistant -> model，其余 -> user；第一条 system 消息放入 systemInstruction。
没有候选或候选被安全策略拦截时返回失败结果，而不是空内容。
"""

from typing import Any, Dict, List, Optional, Tuple

from relay_core.domain.exceptions import UpstreamError
from relay_core.domain.models import ChatMessage, ChatUsage, GenerationOptions, GenerationResult
from relay_core.providers.base import BaseAdapter, first_system_message, resolve_options
from relay_core.providers.catalog import GEMINI_MODELS

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiAdapter(BaseAdapter):
    name = "gemini"
    label = "Gemini"
    models = GEMINI_MODELS

    def _build_request(
        self,
        messages: List[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions],
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        temperature, max_tokens, top_p = resolve_options(options)
        system = first_system_message(messages)
        contents = [
            {
                "role": "model" if m.role == "assistant" else "user",
                "parts": [{"text": m.content}],
            }
            for m in messages
            if m.role != "system"
        ]
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topP": top_p,
            },
        }
        if system and system.content:
            payload["systemInstruction"] = {"parts": [{"text": system.content}]}
        base = self._config.base_url or GEMINI_BASE_URL
        url = f"{base}/{model_id}:generateContent?key={self._config.api_key}"
        return url, {"Content-Type": "application/json"}, payload

    def _parse_response(self, data: Dict[str, Any], model_id: str) -> GenerationResult:
        candidates = data.get("candidates") if isinstance(data, dict) else None
        if not candidates:
            raise UpstreamError(code="EMPTY_RESPONSE", message="No response generated")
        candidate = candidates[0]
        if candidate.get("finishReason") == "SAFETY":
            raise UpstreamError(code="SAFETY_BLOCKED", message="Response blocked due to safety filters")
        parts = (candidate.get("content") or {}).get("parts") or []
        text = parts[0].get("text", "") if parts else ""
        if not text:
            raise UpstreamError(code="EMPTY_RESPONSE", message="Empty response content")
        usage_raw = data.get("usageMetadata") or {}
        return GenerationResult(
            success=True,
            provider=self.name,
            content=text,
            usage=ChatUsage(
                prompt_tokens=usage_raw.get("promptTokenCount", 0),
                completion_tokens=usage_raw.get("candidatesTokenCount", 0),
                total_tokens=usage_raw.get("totalTokenCount", 0),
            ),
            model=model_id,
        )
