"""自定义端点 Provider 适配器。

与托管 Provider 的区别：
- 端点、请求头、请求/响应格式都由调用方在每次调用时通过 CustomEndpointConfig 提供；
- API key 可选，只校验 base_url 是否为合法的 http(s) URL；
- 实例不进入 ProviderRegistry 的缓存（两次调用可能指向不同端点）。

请求体构造与回复提取交给 RequestTranslator。
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx

from relay_core.domain.exceptions import ConfigurationError
from relay_core.domain.models import (
    AdapterConfig,
    ChatMessage,
    ChatUsage,
    CustomEndpointConfig,
    GenerationOptions,
    GenerationResult,
)
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers.base import BaseAdapter
from relay_core.providers.catalog import CUSTOM_MODELS
from relay_core.providers.translator import RequestTranslator


class CustomAdapter(BaseAdapter):
    name = "custom"
    label = "custom"
    models = CUSTOM_MODELS

    def __init__(self, config: CustomEndpointConfig):
        self._custom = config
        self._translator = RequestTranslator(config)
        super().__init__(
            AdapterConfig(
                api_key=config.api_key or "",
                base_url=config.base_url,
                timeout=config.timeout,
            )
        )

    def _validate_config(self) -> None:
        base_url = (self._custom.base_url or "").strip()
        if not base_url:
            raise ConfigurationError(
                code="MISSING_BASE_URL",
                message="Base URL is required for custom LLM provider",
            )
        try:
            url = httpx.URL(base_url)
        except (httpx.InvalidURL, TypeError):
            url = None
        if url is None or url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(
                code="INVALID_BASE_URL",
                message="Invalid base URL provided for custom LLM provider",
            )

    def _build_request(
        self,
        messages: List[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions],
    ) -> Tuple[str, Dict[str, str], Any]:
        payload = self._translator.build_request(messages, model_id, options)
        headers = {"Content-Type": "application/json"}
        if self._custom.api_key:
            headers["Authorization"] = f"Bearer {self._custom.api_key}"
        headers.update(self._custom.headers or {})
        logger.info(
            "custom.request",
            extra={"extra": {
                "url": self._custom.base_url,
                "headers": sorted(headers),
                "body_preview": str(payload)[:200],
            }},
        )
        return self._custom.base_url, headers, payload

    def _parse_response(self, data: Any, model_id: str) -> GenerationResult:
        return GenerationResult(
            success=True,
            provider=self.name,
            content=self._translator.extract_content(data),
            usage=ChatUsage(),
            model=model_id,
        )

    def _error_message(self, resp: Any) -> str:
        try:
            body = resp.text
        except Exception:  # noqa: BLE001 - 错误体读取失败不影响错误上报
            body = "Unknown error"
        reason = getattr(resp, "reason_phrase", "") or ""
        return f"HTTP {resp.status_code}: {reason} - {body}"
