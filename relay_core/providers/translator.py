"""自定义 Provider 的请求/响应格式转换。

自定义端点的请求与响应结构由用户在运行时配置，本模块把这部分逻辑
与 CustomAdapter 的 HTTP 调用隔离开：

- 请求：openai 格式（标准 role/content 数组）或 custom 模板
  （含 ``{{user_message}}`` 等占位符的 JSON 文本）。
- 响应：openai 格式（choices[0]...）、custom 点分路径，或按常见字段名探测。

模板解析失败、路径取值失败都不会让整次调用失败：上游已经成功返回，
这里尽量给出一个字符串结果。
"""

import json
import re
from typing import Any, Dict, List, Optional

from relay_core.domain.exceptions import ExtractionError
from relay_core.domain.models import ChatMessage, CustomEndpointConfig, GenerationOptions
from relay_core.infrastructure.logging.logger import logger
from relay_core.providers.base import first_system_message, resolve_options

NO_CONTENT_FOUND = "No response content found"
EXTRACTION_FAILED = "Error extracting response content"

# 自定义模板支持的占位符
_PLACEHOLDER = re.compile(r"\{\{(user_message|system_message|model|temperature|max_tokens)\}\}")

# 未配置字段路径时依次尝试的字段
_PROBE_FIELDS = ("response", "text", "content", "output", "result")


def _flatten(messages: List[ChatMessage]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def _json_fragment(value: str) -> str:
    """转义后放进模板中已有的引号里。"""

    return json.dumps(value, ensure_ascii=False)[1:-1]


class RequestTranslator:
    """把统一的会话转换成自定义端点的请求体，并从响应中取出回复文本。"""

    def __init__(self, config: CustomEndpointConfig):
        self._config = config

    # ---- 请求 ----

    def build_request(
        self,
        messages: List[ChatMessage],
        model_id: str,
        options: Optional[GenerationOptions] = None,
    ) -> Any:
        temperature, max_tokens, top_p = resolve_options(options)
        if (self._config.request_format or "openai") == "openai":
            return {
                "model": model_id,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "temperature": temperature,
                "max_tokens": max_tokens,
                "top_p": top_p,
                "stream": False,
            }

        template = self._config.request_template
        if template:
            try:
                return self.render_template(template, messages, model_id, temperature, max_tokens)
            except ValueError as exc:
                logger.warning(
                    "custom.template_invalid",
                    extra={"extra": {"error": str(exc)}},
                )
                return {"prompt": _flatten(messages), "model": model_id}

        return {
            "prompt": _flatten(messages),
            "model": model_id,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    @staticmethod
    def render_template(
        template: str,
        messages: List[ChatMessage],
        model_id: str,
        temperature: float,
        max_tokens: int,
    ) -> Any:
        """对模板文本做占位符替换后再解析为 JSON。

        字符串类占位符按 JSON 字符串内容转义（引号由模板自己提供），
        数值类占位符原样写入，因此 ``{"t": {{temperature}}}`` 得到数值，
        ``{"t": "{{temperature}}"}`` 得到字符串。解析失败抛 ValueError。
        """

        user = next((m.content for m in messages if m.role == "user"), "")
        system = first_system_message(messages)
        values = {
            "user_message": _json_fragment(user),
            "system_message": _json_fragment(system.content if system else ""),
            "model": _json_fragment(model_id),
            "temperature": json.dumps(temperature),
            "max_tokens": json.dumps(max_tokens),
        }
        rendered = _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)
        return json.loads(rendered)

    # ---- 响应 ----

    def extract_content(self, data: Any) -> str:
        if (self._config.response_format or "openai") == "openai":
            return self._extract_openai(data)

        path = self._config.response_path
        if path:
            try:
                value = self.walk_path(data, path)
            except ExtractionError as exc:
                logger.warning(
                    "custom.extract_failed",
                    extra={"extra": {"path": path, "error": exc.message}},
                )
                return EXTRACTION_FAILED
            return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)

        if isinstance(data, dict):
            for key in _PROBE_FIELDS:
                value = data.get(key)
                if value:
                    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
        return json.dumps(data, ensure_ascii=False)

    @staticmethod
    def walk_path(data: Any, path: str) -> Any:
        """按点分路径取值，任何一段缺失都抛 ExtractionError。列表可用数字下标。"""

        current = data
        for key in path.split("."):
            if isinstance(current, dict) and key in current:
                current = current[key]
            elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
                current = current[int(key)]
            else:
                raise ExtractionError(
                    code="PATH_NOT_FOUND",
                    message=f"Path {path} not found in response",
                )
        return current

    @staticmethod
    def _extract_openai(data: Any) -> str:
        choices = data.get("choices") if isinstance(data, dict) else None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            first = choices[0]
            content = (first.get("message") or {}).get("content")
            if content:
                return content
            if first.get("text"):
                return first["text"]
        return NO_CONTENT_FOUND
