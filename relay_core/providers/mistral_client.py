"""Mistral AI Provider 适配器。

接口与 OpenAI 一致，均使用 chat/completions 端点与 Bearer 认证，
因此直接复用 OpenAICompatibleAdapter，只替换端点与模型表。
"""

from relay_core.providers.catalog import MISTRAL_MODELS
from relay_core.providers.openai_client import OpenAICompatibleAdapter


class MistralAdapter(OpenAICompatibleAdapter):
    name = "mistral"
    label = "Mistral"
    endpoint = "https://api.mistral.ai/v1/chat/completions"
    models = MISTRAL_MODELS
