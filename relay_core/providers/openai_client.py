"""OpenAI Provider 适配器。

chat/completions 端点：
- URL: https://api.openai.com/v1/chat/completions
- 认证: Authorization: Bearer <api_key>

请求体只使用公共字段：model/messages/temperature/max_tokens/top_p/stream，
stream 固定为 False。Mistral 使用相同的协议，见 mistral_client。
"""

from typing import Any, Dict, List, Optional, Tuple

from relay_core.domain.exceptions import UpstreamError
from relay_core.domain.models import ChatMessage, ChatUsage, GenerationOptions, GenerationResult
from relay_core.providers.base import BaseAdapter, resolve_options
from relay_core.providers.catalog import OPENAI_MODELS


class OpenAICompatibleAdapter(BaseAdapter):
    """OpenAI 形状（chat/completions）协议的公共实现。"""

    endpoint = ""

    def _build_request(
        self,
        messages: List[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions],
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        temperature, max_tokens, top_p = resolve_options(options)
        payload = {
            "model": model_id,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "stream": False,
        }
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        return self._config.base_url or self.endpoint, headers, payload

    def _parse_response(self, data: Dict[str, Any], model_id: str) -> GenerationResult:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise UpstreamError(code="EMPTY_RESPONSE", message="No choices returned")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not content:
            raise UpstreamError(code="EMPTY_RESPONSE", message="Empty response content")
        usage_raw = data.get("usage") or {}
        return GenerationResult(
            success=True,
            provider=self.name,
            content=content,
            usage=ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            ),
            model=model_id,
        )


class OpenAIAdapter(OpenAICompatibleAdapter):
    name = "openai"
    label = "OpenAI"
    endpoint = "https://api.openai.com/v1/chat/completions"
    models = OPENAI_MODELS
