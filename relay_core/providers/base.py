"""Provider 抽象接口与适配器的公共实现。

上层（ProviderRegistry、消息处理流程）不直接依赖具体厂商的 HTTP 协议，而是依赖此协议：

- 每个厂商实现一个 ProviderAdapter（如 OpenAIAdapter、ClaudeAdapter）。
- 负责：将统一的 ChatMessage 列表转成具体 API 请求，并把响应 JSON 解析为 GenerationResult。
- generate_response 永远不向调用方抛异常，任何失败都以 success=False 的结果返回。

BaseAdapter 封装了各 Provider 共同的部分（凭据校验、模型校验、HTTP 调用、
错误信息提取），子类只需实现请求构造与响应解析两步。
"""

from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from relay_core.domain.exceptions import (
    BusinessError,
    ConfigurationError,
    NetworkError,
    UnsupportedModelError,
    UpstreamError,
)
from relay_core.domain.models import (
    AdapterConfig,
    ChatMessage,
    GenerationOptions,
    GenerationResult,
    ModelInfo,
)
from relay_core.infrastructure.logging.logger import logger

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TOP_P = 1


class ProviderAdapter(Protocol):
    """LLM Provider 适配器协议。

    实现者需要提供：
    - name: Provider ID，用于日志与结果中的 provider 字段。
    - available_models(): 静态模型表，不会失败。
    - is_model_supported(model_id): 模型是否在模型表中。
    - generate_response(...): 执行一次非流式调用，返回统一的 GenerationResult。
    """

    name: str

    def available_models(self) -> List[ModelInfo]:
        ...

    def is_model_supported(self, model_id: str) -> bool:
        ...

    def generate_response(
        self,
        messages: Sequence[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> GenerationResult:
        ...


def resolve_options(options: Optional[GenerationOptions]) -> Tuple[float, int, float]:
    """返回 (temperature, max_tokens, top_p)，缺省字段使用统一默认值。"""

    opts = options or GenerationOptions()
    temperature = DEFAULT_TEMPERATURE if opts.temperature is None else opts.temperature
    max_tokens = DEFAULT_MAX_TOKENS if opts.max_tokens is None else opts.max_tokens
    top_p = DEFAULT_TOP_P if opts.top_p is None else opts.top_p
    return temperature, max_tokens, top_p


class BaseAdapter:
    """HTTP Provider 适配器基类。

    子类需要设置 name / label / models，并实现 _build_request 与 _parse_response。
    """

    name = ""
    label = ""
    models: Tuple[ModelInfo, ...] = ()

    def __init__(self, config: AdapterConfig):
        self._config = config
        self._validate_config()

    def _validate_config(self) -> None:
        if not (self._config.api_key or "").strip():
            # 凭据缺失直接构造失败，由 Registry 当作“不可用”处理
            raise ConfigurationError(
                code="MISSING_API_KEY",
                message=f"API key is required for {self.name} provider",
                provider=self.name,
            )

    def available_models(self) -> List[ModelInfo]:
        return list(self.models)

    def is_model_supported(self, model_id: str) -> bool:
        return any(m.id == model_id for m in self.models)

    def generate_response(
        self,
        messages: Sequence[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> GenerationResult:
        """执行一次非流式调用。

        步骤：
        1. 校验模型是否在模型表中（不支持时不发起 HTTP 请求）。
        2. 构造厂商请求（URL、请求头、JSON 体）。
        3. 发送请求并把网络错误/非 2xx/非法 JSON 转成 UpstreamError。
        4. 解析响应为 GenerationResult。
        任何一步失败都会被 _handle_error 转换为失败结果。
        """

        try:
            self._ensure_model(model_id)
            url, headers, payload = self._build_request(list(messages), model_id, options)
            data = self._post_json(url, headers, payload)
            return self._parse_response(data, model_id)
        except Exception as exc:  # noqa: BLE001 - 适配器边界，不向调用方抛异常
            return self._handle_error(exc, model_id)

    # ---- 子类实现 ----

    def _build_request(
        self,
        messages: List[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions],
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        raise NotImplementedError

    def _parse_response(self, data: Dict[str, Any], model_id: str) -> GenerationResult:
        raise NotImplementedError

    # ---- 公共工具 ----

    def _ensure_model(self, model_id: str) -> None:
        if not self.is_model_supported(model_id):
            available = ", ".join(m.id for m in self.models)
            raise UnsupportedModelError(
                code="UNSUPPORTED_MODEL",
                message=(
                    f"Model {model_id} is not supported by {self.label or self.name} provider. "
                    f"Available models: {available}"
                ),
            )

    def _post_json(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Any:
        timeout = self._config.timeout
        try:
            with httpx.Client(
                timeout=timeout,
                trust_env=False,
                transport=httpx.HTTPTransport(retries=self._config.max_retries),
            ) as client:
                resp = client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException:
            raise NetworkError(code="TIMEOUT", message=f"Request timed out after {timeout:g}s")
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接被拒绝等
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        if not 200 <= resp.status_code < 300:
            raise UpstreamError(
                code="API_ERROR",
                message=self._error_message(resp),
                http_status=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError:
            raise UpstreamError(code="MALFORMED_RESPONSE", message=f"Malformed JSON response from {self.name}")

    def _error_message(self, resp: Any) -> str:
        """优先使用错误体中的 error.message，否则返回 `HTTP <status>: <reason>`。"""

        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        reason = getattr(resp, "reason_phrase", "") or ""
        return f"HTTP {resp.status_code}: {reason}"

    def _handle_error(self, exc: Exception, model_id: Optional[str]) -> GenerationResult:
        if isinstance(exc, BusinessError):
            code, message = exc.code, exc.message
        else:
            code, message = "UNEXPECTED_ERROR", str(exc) or "Unknown error occurred"
        logger.warning(
            "provider.error",
            extra={"extra": {"provider": self.name, "model": model_id, "code": code, "error": message}},
        )
        return GenerationResult.failure(self.name, message, model=model_id)


def first_system_message(messages: Sequence[ChatMessage]) -> Optional[ChatMessage]:
    """返回第一条 system 消息（多条时只认第一条）。"""

    for message in messages:
        if message.role == "system":
            return message
    return None
