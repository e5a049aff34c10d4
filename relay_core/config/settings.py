"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。

各托管 Provider 的凭据字段名与环境变量一一对应（大小写不敏感）：
OPENAI_API_KEY / ANTHROPIC_API_KEY / MISTRAL_API_KEY / GEMINI_API_KEY。
自定义 Provider 不读取任何全局凭据，它的密钥随每次调用的配置对象传入。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("RELAY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class RelaySettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 凭据 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic Claude API 密钥")
    mistral_api_key: Optional[str] = Field(default=None, description="Mistral AI API 密钥")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API 密钥")

    default_provider: str = Field(
        default="openai",
        description="未指定 Provider 时使用的名称，例如 openai、claude",
    )

    # ---- HTTP ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    max_retries: int = Field(default=3, ge=0, le=10, description="连接级重试次数")

    # ---- 结果广播 ----
    heartbeat_interval: float = Field(default=30.0, gt=0, description="心跳间隔（秒）")
    sweep_interval: float = Field(default=30.0, gt=0, description="清理失活订阅的间隔（秒）")
    liveness_timeout: float = Field(
        default=120.0,
        gt=0,
        description="超过该时长没有成功投递的订阅会被清理（秒）",
    )
    subscriber_queue_size: int = Field(default=100, ge=1, description="每个订阅者的缓冲队列长度")
    subscriber_put_timeout: float = Field(
        default=0.5,
        ge=0,
        description="写入订阅者队列的最长等待时间（秒），超时视为投递失败",
    )

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = RelaySettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = RelaySettings
