"""统一的对话与生成结果数据模型。

本模块定义了各 Provider 适配器之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- GenerationOptions: 可选的生成参数，缺省值由各适配器决定。
- GenerationResult: 适配器返回的统一结果（成功或失败）。
- ModelInfo / ProviderInfo: 静态的模型表与 Provider 元数据。
- CustomEndpointConfig: 自定义 Provider 的每次调用配置。

所有适配器都只依赖这些模型，并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional

from relay_core.domain.exceptions import ConfigurationError


# LLM 消息角色类型
Role = Literal["system", "user", "assistant"]

# 自定义 Provider 的请求/响应格式："openai" 表示与托管 API 相同的结构，"hosted" 是它的别名
WireFormat = Literal["openai", "custom"]

_FORMAT_ALIASES = {"openai": "openai", "hosted": "openai", "custom": "custom"}


@dataclass
class ChatMessage:
    """一条对话消息。会话是有序的 ChatMessage 列表，顺序有意义。"""

    role: Role
    content: str


@dataclass
class GenerationOptions:
    """生成参数。为 None 的字段由适配器使用自己的默认值。

    stream 仅为兼容调用方保留，所有适配器都以非流式方式调用上游。
    """

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    stream: bool = False


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }


@dataclass
class GenerationResult:
    """一次生成调用的最终结果。

    - success 为 True 时 content 有意义；为 False 时 error 有意义。
    - provider 总是填写；model 在失败时可能为空。
    """

    success: bool
    provider: str
    content: Optional[str] = None
    error: Optional[str] = None
    usage: Optional[ChatUsage] = None
    model: Optional[str] = None

    @classmethod
    def failure(cls, provider: str, error: str, model: Optional[str] = None) -> "GenerationResult":
        return cls(success=False, provider=provider, error=error, model=model)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "provider": self.provider}
        if self.model is not None:
            data["model"] = self.model
        if self.success:
            data["content"] = self.content or ""
        else:
            data["error"] = self.error or ""
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        return data


@dataclass(frozen=True)
class ModelInfo:
    """单个模型的静态描述，进程生命周期内不变。"""

    id: str
    name: str
    description: str
    context_length: int
    input_cost_per_1k: float
    output_cost_per_1k: float
    supports_streaming: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "contextLength": self.context_length,
            "inputCostPer1k": self.input_cost_per_1k,
            "outputCostPer1k": self.output_cost_per_1k,
            "supportsStreaming": self.supports_streaming,
        }


@dataclass(frozen=True)
class ProviderInfo:
    """Provider 元数据，与该 Provider 当前是否可用无关。"""

    id: str
    name: str
    description: str
    website: str
    requires_api_key: bool
    env_key_name: Optional[str]
    is_custom: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "website": self.website,
            "requiresApiKey": self.requires_api_key,
            "envKeyName": self.env_key_name,
            "isCustom": self.is_custom,
        }


@dataclass
class AdapterConfig:
    """托管适配器的构造参数，由 ProviderRegistry 填充。"""

    api_key: str
    base_url: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3


@dataclass
class CustomEndpointConfig:
    """自定义 Provider 的调用配置，由调用方在每次调用时提供，不做缓存。

    - base_url: 必填，必须是合法的 http(s) URL。
    - api_key: 可选；提供时以 Bearer 形式写入 Authorization 头。
    - headers: 额外请求头，会覆盖默认头。
    - request_template: 含 ``{{placeholder}}`` 的 JSON 文本。
    - response_path: 形如 ``data.answer`` 的点分路径。
    """

    base_url: str
    api_key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    request_format: WireFormat = "openai"
    response_format: WireFormat = "openai"
    request_template: Optional[str] = None
    response_path: Optional[str] = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        # 配置来自用户保存的 JSON，类型不对时统一报 INVALID_CUSTOM_CONFIG
        if not isinstance(self.base_url, str):
            raise _invalid("baseUrl must be a string")
        if self.api_key is not None and not isinstance(self.api_key, str):
            raise _invalid("apiKey must be a string")
        if not isinstance(self.headers, Mapping):
            raise _invalid("headers must be an object")
        self.headers = {str(k): str(v) for k, v in self.headers.items()}
        self.request_format = _normalize_format(self.request_format, "requestFormat")
        self.response_format = _normalize_format(self.response_format, "responseFormat")
        for name in ("request_template", "response_path"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise _invalid(f"{name} must be a string")
        if isinstance(self.timeout, bool):
            raise _invalid("timeout must be a number of seconds")
        try:
            self.timeout = float(self.timeout)
        except (TypeError, ValueError):
            raise _invalid("timeout must be a number of seconds")
        if self.timeout <= 0:
            raise _invalid("timeout must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomEndpointConfig":
        """从聊天设置中保存的 JSON（camelCase 或 snake_case）构造配置。

        字段类型不合法时抛 ConfigurationError(INVALID_CUSTOM_CONFIG)。
        """

        if not isinstance(data, Mapping):
            raise _invalid("custom config must be an object")

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return default

        return cls(
            base_url=pick("baseUrl", "base_url", default=""),
            api_key=pick("apiKey", "api_key"),
            headers=pick("headers", default={}),
            request_format=pick("requestFormat", "request_format", default="openai"),
            response_format=pick("responseFormat", "response_format", default="openai"),
            request_template=pick("customRequestTemplate", "requestTemplate", "request_template"),
            response_path=pick("customResponsePath", "responseFieldPath", "response_path"),
            timeout=pick("timeout", default=30.0),
        )


def _invalid(reason: str) -> ConfigurationError:
    return ConfigurationError(
        code="INVALID_CUSTOM_CONFIG",
        message=f"Invalid custom LLM configuration: {reason}",
    )


def _normalize_format(value: Any, name: str) -> str:
    fmt = _FORMAT_ALIASES.get(str(value or "openai").lower())
    if fmt is None:
        raise _invalid(f"{name} must be one of hosted, openai, custom")
    return fmt
