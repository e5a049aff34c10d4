"""LLM Provider 集成层。

该包下的模块负责：
- 定义 ProviderAdapter 协议与公共实现 (base)。
- 维护静态模型表与 Provider 元数据 (catalog)。
- 提供各厂商的具体实现 (openai_client、claude_client、mistral_client、gemini_client)。
- 自定义端点适配器及其格式转换 (custom_client、translator)。
- Provider 发现与实例缓存 (registry)。
"""

from typing import Any, Dict, Optional, Union

from relay_core.domain.exceptions import ConfigurationError
from relay_core.domain.models import CustomEndpointConfig
from relay_core.providers.base import ProviderAdapter
from relay_core.providers.catalog import CUSTOM_PROVIDER_ID
from relay_core.providers.custom_client import CustomAdapter
from relay_core.providers.registry import ProviderRegistry


def create_provider(
    provider_id: str,
    registry: ProviderRegistry,
    custom_config: Optional[Union[CustomEndpointConfig, Dict[str, Any]]] = None,
) -> ProviderAdapter:
    """根据 Provider ID 获取适配器。

    custom 每次都用调用方提供的配置新建 CustomAdapter；其余 Provider 走注册表缓存。
    不可用时抛 ConfigurationError。
    """

    if provider_id == CUSTOM_PROVIDER_ID:
        if not custom_config:
            raise ConfigurationError(
                code="MISSING_CUSTOM_CONFIG",
                message=f"Provider {provider_id} not available or not configured",
            )
        if not isinstance(custom_config, CustomEndpointConfig):
            custom_config = CustomEndpointConfig.from_dict(custom_config)
        return CustomAdapter(custom_config)

    adapter = registry.get_adapter(provider_id)
    if adapter is None:
        raise ConfigurationError(
            code="PROVIDER_UNAVAILABLE",
            message=f"Provider {provider_id} not available or not configured",
        )
    return adapter


__all__ = ["ProviderAdapter", "ProviderRegistry", "CustomAdapter", "create_provider"]
