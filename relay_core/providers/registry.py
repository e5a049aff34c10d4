"""Provider 注册表。

ProviderRegistry 是一个显式的值，由应用启动时创建并传给调用方：

- 根据当前配置判断哪些 Provider 可用（托管 Provider 需要对应凭据非空）。
- 按需构造托管适配器并缓存（每个 Provider ID 只构造一次，线程安全）。
- 提供模型表与默认模型选择。

自定义 Provider 不经过缓存：调用方每次都用自己的 CustomEndpointConfig 直接构造 CustomAdapter。
"""

import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from relay_core.config.settings import settings as default_settings
from relay_core.domain.models import AdapterConfig, ModelInfo, ProviderInfo
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers.base import ProviderAdapter
from relay_core.providers.catalog import (
    CUSTOM_MODELS,
    CUSTOM_PROVIDER_ID,
    PREFERRED_MODELS,
    PROVIDER_INFOS,
)
from relay_core.providers.claude_client import ClaudeAdapter
from relay_core.providers.gemini_client import GeminiAdapter
from relay_core.providers.mistral_client import MistralAdapter
from relay_core.providers.openai_client import OpenAIAdapter

AdapterFactory = Callable[[AdapterConfig], ProviderAdapter]

DEFAULT_FACTORIES: Mapping[str, AdapterFactory] = {
    "openai": OpenAIAdapter,
    "claude": ClaudeAdapter,
    "mistral": MistralAdapter,
    "gemini": GeminiAdapter,
}


class ProviderRegistry:
    """托管适配器的发现、构造与缓存。

    Args:
        config: 提供凭据与 HTTP 参数的配置对象（默认为全局 settings），
            凭据按 ProviderInfo.env_key_name 的小写形式读取属性。
        factories: Provider ID -> 适配器工厂，测试时可替换。
    """

    def __init__(
        self,
        config: Any = None,
        factories: Optional[Mapping[str, AdapterFactory]] = None,
    ):
        self._settings = config if config is not None else default_settings
        self._factories: Dict[str, AdapterFactory] = dict(factories or DEFAULT_FACTORIES)
        self._instances: Dict[str, ProviderAdapter] = {}
        self._lock = threading.Lock()

    # ---- 元数据 ----

    def list_descriptors(self) -> List[ProviderInfo]:
        return list(PROVIDER_INFOS)

    def _descriptor(self, provider_id: str) -> Optional[ProviderInfo]:
        for info in PROVIDER_INFOS:
            if info.id == provider_id:
                return info
        return None

    def _credential(self, info: ProviderInfo) -> Optional[str]:
        if not info.env_key_name:
            return None
        value = getattr(self._settings, info.env_key_name.lower(), None)
        return value if isinstance(value, str) else None

    # ---- 可用性 ----

    def is_usable(self, provider_id: str) -> bool:
        return self.explain_unavailable(provider_id) is None

    def explain_unavailable(self, provider_id: str) -> Optional[str]:
        """返回 Provider 不可用的原因；可用时返回 None。"""

        info = self._descriptor(provider_id)
        if info is None:
            return f"Provider {provider_id} is not registered"
        if info.is_custom:
            return None
        credential = self._credential(info)
        if not credential or not credential.strip():
            return f"Provider {provider_id} is not configured (missing {info.env_key_name})"
        return None

    def list_available_provider_ids(self) -> List[str]:
        return [info.id for info in PROVIDER_INFOS if self.is_usable(info.id)]

    # ---- 适配器 ----

    def get_adapter(self, provider_id: str) -> Optional[ProviderAdapter]:
        """获取托管 Provider 的适配器实例，不可用时返回 None。

        custom Provider 不允许通过注册表获取，请直接构造 CustomAdapter。
        """

        if provider_id == CUSTOM_PROVIDER_ID:
            logger.warning(
                "registry.custom_not_cached",
                extra={"extra": {
                    "provider": provider_id,
                    "reason": "custom adapters must be built with a per-call CustomEndpointConfig",
                }},
            )
            return None

        with self._lock:
            cached = self._instances.get(provider_id)
            if cached is not None:
                return cached

            factory = self._factories.get(provider_id)
            reason = self.explain_unavailable(provider_id)
            if factory is None or reason:
                logger.warning(
                    "registry.provider_unavailable",
                    extra={"extra": {
                        "provider": provider_id,
                        "reason": reason or f"Provider {provider_id} is not registered",
                    }},
                )
                return None

            info = self._descriptor(provider_id)
            config = AdapterConfig(
                api_key=self._credential(info) or "",
                timeout=float(getattr(self._settings, "http_timeout", 30.0)),
                max_retries=int(getattr(self._settings, "max_retries", 3)),
            )
            try:
                adapter = factory(config)
            except Exception as exc:  # noqa: BLE001 - 构造失败视为不可用
                logger.error(
                    "registry.adapter_init_failed",
                    extra={"extra": {"provider": provider_id, "error": str(exc)}},
                )
                return None
            self._instances[provider_id] = adapter
            logger.info("registry.adapter_created", extra={"extra": {"provider": provider_id}})
            return adapter

    def clear_cache(self) -> None:
        """清空已缓存的适配器（凭据轮换或测试时使用）。"""

        with self._lock:
            self._instances.clear()

    # ---- 模型 ----

    def list_models(self, provider_id: str) -> List[ModelInfo]:
        if provider_id == CUSTOM_PROVIDER_ID:
            return list(CUSTOM_MODELS)
        adapter = self.get_adapter(provider_id)
        return adapter.available_models() if adapter else []

    def all_models(self) -> Dict[str, List[ModelInfo]]:
        """所有可用 Provider 的模型表，键为 Provider ID。"""

        return {pid: self.list_models(pid) for pid in self.list_available_provider_ids()}

    def is_model_supported(self, provider_id: str, model_id: str) -> bool:
        return any(m.id == model_id for m in self.list_models(provider_id))

    def default_model(self, provider_id: str) -> Optional[str]:
        models = self.list_models(provider_id)
        if not models:
            return None
        preferred = PREFERRED_MODELS.get(provider_id)
        if preferred and any(m.id == preferred for m in models):
            return preferred
        return models[0].id
