"""各 Provider 的静态模型表与元数据。

模型 ID、上下文长度与价格与各厂商公开的模型名保持一致，
新增模型时只需修改这里，适配器代码不需要变化。
"""

from typing import Mapping, Tuple

from relay_core.domain.models import ModelInfo, ProviderInfo


OPENAI_MODELS: Tuple[ModelInfo, ...] = (
    ModelInfo(
        id="gpt-4o",
        name="GPT-4o",
        description="Most advanced GPT-4 model with vision capabilities",
        context_length=128000,
        input_cost_per_1k=0.005,
        output_cost_per_1k=0.015,
        supports_streaming=True,
    ),
    ModelInfo(
        id="gpt-4o-mini",
        name="GPT-4o Mini",
        description="Faster, cheaper GPT-4 model",
        context_length=128000,
        input_cost_per_1k=0.00015,
        output_cost_per_1k=0.0006,
        supports_streaming=True,
    ),
    ModelInfo(
        id="gpt-4-turbo",
        name="GPT-4 Turbo",
        description="High-performance GPT-4 model",
        context_length=128000,
        input_cost_per_1k=0.01,
        output_cost_per_1k=0.03,
        supports_streaming=True,
    ),
    ModelInfo(
        id="gpt-3.5-turbo",
        name="GPT-3.5 Turbo",
        description="Fast and efficient model for most tasks",
        context_length=16385,
        input_cost_per_1k=0.0005,
        output_cost_per_1k=0.0015,
        supports_streaming=True,
    ),
)

CLAUDE_MODELS: Tuple[ModelInfo, ...] = (
    ModelInfo(
        id="claude-3-5-sonnet-20241022",
        name="Claude 3.5 Sonnet",
        description="Most intelligent model with best performance on complex tasks",
        context_length=200000,
        input_cost_per_1k=0.003,
        output_cost_per_1k=0.015,
        supports_streaming=True,
    ),
    ModelInfo(
        id="claude-3-5-haiku-20241022",
        name="Claude 3.5 Haiku",
        description="Fastest model for everyday tasks",
        context_length=200000,
        input_cost_per_1k=0.00025,
        output_cost_per_1k=0.00125,
        supports_streaming=True,
    ),
    ModelInfo(
        id="claude-3-opus-20240229",
        name="Claude 3 Opus",
        description="Most powerful model for highly complex tasks",
        context_length=200000,
        input_cost_per_1k=0.015,
        output_cost_per_1k=0.075,
        supports_streaming=True,
    ),
    ModelInfo(
        id="claude-3-sonnet-20240229",
        name="Claude 3 Sonnet",
        description="Balanced model for a wide range of tasks",
        context_length=200000,
        input_cost_per_1k=0.003,
        output_cost_per_1k=0.015,
        supports_streaming=True,
    ),
)

MISTRAL_MODELS: Tuple[ModelInfo, ...] = (
    ModelInfo(
        id="mistral-large-latest",
        name="Mistral Large",
        description="Most advanced model for complex reasoning tasks",
        context_length=128000,
        input_cost_per_1k=0.004,
        output_cost_per_1k=0.012,
        supports_streaming=True,
    ),
    ModelInfo(
        id="mistral-medium-latest",
        name="Mistral Medium",
        description="Balanced model for most use cases",
        context_length=32000,
        input_cost_per_1k=0.0027,
        output_cost_per_1k=0.0081,
        supports_streaming=True,
    ),
    ModelInfo(
        id="mistral-small-latest",
        name="Mistral Small",
        description="Fast and efficient model for simple tasks",
        context_length=32000,
        input_cost_per_1k=0.001,
        output_cost_per_1k=0.003,
        supports_streaming=True,
    ),
    ModelInfo(
        id="open-mistral-7b",
        name="Open Mistral 7B",
        description="Open source model for basic tasks",
        context_length=32000,
        input_cost_per_1k=0.00025,
        output_cost_per_1k=0.00025,
        supports_streaming=True,
    ),
    ModelInfo(
        id="open-mixtral-8x7b",
        name="Open Mixtral 8x7B",
        description="Open source mixture of experts model",
        context_length=32000,
        input_cost_per_1k=0.0007,
        output_cost_per_1k=0.0007,
        supports_streaming=True,
    ),
)

GEMINI_MODELS: Tuple[ModelInfo, ...] = (
    ModelInfo(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro",
        description="Most capable model for complex reasoning and long context",
        context_length=2000000,
        input_cost_per_1k=0.00125,
        output_cost_per_1k=0.005,
        supports_streaming=True,
    ),
    ModelInfo(
        id="gemini-1.5-flash",
        name="Gemini 1.5 Flash",
        description="Fast and efficient model for most tasks",
        context_length=1000000,
        input_cost_per_1k=0.000075,
        output_cost_per_1k=0.0003,
        supports_streaming=True,
    ),
    ModelInfo(
        id="gemini-1.0-pro",
        name="Gemini 1.0 Pro",
        description="Balanced model for general use",
        context_length=30720,
        input_cost_per_1k=0.0005,
        output_cost_per_1k=0.0015,
        supports_streaming=True,
    ),
)

CUSTOM_MODELS: Tuple[ModelInfo, ...] = (
    ModelInfo(
        id="custom-model",
        name="Custom Model",
        description="User-configured custom LLM model",
        context_length=4096,
        input_cost_per_1k=0,
        output_cost_per_1k=0,
        supports_streaming=False,
    ),
)


# 固定顺序：托管 Provider 在前，custom 在最后
PROVIDER_INFOS: Tuple[ProviderInfo, ...] = (
    ProviderInfo(
        id="openai",
        name="OpenAI",
        description="GPT models from OpenAI",
        website="https://openai.com",
        requires_api_key=True,
        env_key_name="OPENAI_API_KEY",
    ),
    ProviderInfo(
        id="claude",
        name="Anthropic Claude",
        description="Claude models from Anthropic",
        website="https://anthropic.com",
        requires_api_key=True,
        env_key_name="ANTHROPIC_API_KEY",
    ),
    ProviderInfo(
        id="mistral",
        name="Mistral AI",
        description="Mistral and Mixtral models",
        website="https://mistral.ai",
        requires_api_key=True,
        env_key_name="MISTRAL_API_KEY",
    ),
    ProviderInfo(
        id="gemini",
        name="Google Gemini",
        description="Gemini models from Google",
        website="https://ai.google.dev",
        requires_api_key=True,
        env_key_name="GEMINI_API_KEY",
    ),
    ProviderInfo(
        id="custom",
        name="Custom Endpoint",
        description="Any HTTP endpoint with a user-defined request/response format",
        website="",
        requires_api_key=False,
        env_key_name=None,
        is_custom=True,
    ),
)

CUSTOM_PROVIDER_ID = "custom"

# 每个 Provider 的首选默认模型；不在模型表中时回退到第一个模型
PREFERRED_MODELS: Mapping[str, str] = {
    "openai": "gpt-4o-mini",
    "claude": "claude-3-5-haiku-20241022",
    "mistral": "mistral-small-latest",
    "gemini": "gemini-1.5-flash",
    "custom": "custom-model",
}

