"""对外 API 服务模块。

RelayService 负责在启动时把各组件显式连接起来（注册表、Broker、清理器、仓库、消息流水线），
并提供供 HTTP 层直接调用的函数接口。
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional
from uuid import uuid4

from relay_core.broker.result_broker import ResultBroker
from relay_core.broker.sinks import QueueSink
from relay_core.broker.sweeper import LivenessSweeper
from relay_core.config.settings import settings
from relay_core.domain.chat import (
    ChatSettingsRepository,
    InMemoryChatSettingsRepository,
    LLMResultRecord,
    MessageContext,
    ResultRepository,
)
from relay_core.domain.exceptions import BusinessError
from relay_core.domain.models import ChatMessage
from relay_core.flows.graph import build_graph
from relay_core.flows.runner import run_pipeline
from relay_core.infrastructure.logging.logger import logger
from relay_core.infrastructure.storage.json_store import JsonResultStore
from relay_core.providers import create_provider
from relay_core.providers.catalog import CUSTOM_PROVIDER_ID
from relay_core.providers.registry import ProviderRegistry


class RelayService:
    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        broker: Optional[ResultBroker] = None,
        settings_repo: Optional[ChatSettingsRepository] = None,
        results_repo: Optional[ResultRepository] = None,
        config=None,
    ):
        self._settings = config or settings
        self.registry = registry or ProviderRegistry(self._settings)
        self.broker = broker or ResultBroker(
            heartbeat_interval=self._settings.heartbeat_interval,
            queue_size=self._settings.subscriber_queue_size,
        )
        self.sweeper = LivenessSweeper(
            self.broker,
            interval=self._settings.sweep_interval,
            timeout=self._settings.liveness_timeout,
        )
        self.settings_repo = settings_repo or InMemoryChatSettingsRepository()
        self.results_repo = results_repo
        self._graph = build_graph(self.registry, self.settings_repo, self.results_repo, self.broker)

    # ---- 生命周期 ----

    def start(self) -> None:
        self.broker.start()
        self.sweeper.start()
        logger.info("service.started")

    def stop(self) -> None:
        self.sweeper.stop()
        self.broker.stop()
        logger.info("service.stopped")

    # ---- Provider ----

    def describe_providers(self) -> Dict[str, Any]:
        """所有 Provider 的元数据、当前可用的 Provider 及其模型表。"""

        available = self.registry.list_available_provider_ids()
        models = {pid: [m.to_dict() for m in items] for pid, items in self.registry.all_models().items()}
        return {
            "success": True,
            "providers": [info.to_dict() for info in self.registry.list_descriptors()],
            "availableProviders": available,
            "models": models,
        }

    def test_llm(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        prompt: str = "Hello! Please respond with a simple greeting.",
        custom_config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """用一条测试消息调用指定 Provider/模型。

        provider 缺省为配置中的 default_provider，model 缺省为该 Provider 的推荐模型。
        """

        provider = provider or self._settings.default_provider
        model = model or self.registry.default_model(provider) or ""
        if provider != CUSTOM_PROVIDER_ID and not self.registry.is_usable(provider):
            available = ", ".join(self.registry.list_available_provider_ids()) or "none"
            return {
                "success": False,
                "message": f"Provider {provider} not available. Available providers: {available}",
            }
        if not self.registry.is_model_supported(provider, model):
            return {"success": False, "message": f"Model {model} not supported by provider {provider}"}

        try:
            adapter = create_provider(provider, self.registry, custom_config)
        except BusinessError as exc:
            return {"success": False, "message": exc.message}

        started = time.monotonic()
        result = adapter.generate_response([ChatMessage(role="user", content=prompt)], model)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        if not result.success:
            logger.warning(
                "service.test_llm_failed",
                extra={"extra": {"provider": provider, "model": model, "error": result.error}},
            )
            return {"success": False, "message": f"LLM test failed: {result.error}"}

        now = datetime.now(timezone.utc)
        if self.results_repo is not None:
            record = LLMResultRecord(
                id=f"r-{uuid4().hex}",
                session_id="test",
                chat_id="test",
                user_id="test",
                message_id=None,
                provider=provider,
                model=model,
                prompt=prompt,
                response=result.content,
                error=None,
                processing_time_ms=elapsed_ms,
                created_at=now,
            )
            try:
                self.results_repo.save_result(record)
            except BusinessError as exc:
                logger.error("service.save_failed", extra={"extra": {"code": exc.code, "error": exc.message}})

        return {
            "success": True,
            "result": {
                "content": result.content,
                "usage": result.usage.to_dict() if result.usage else None,
                "model": model,
                "provider": provider,
                "processingTime": elapsed_ms,
                "timestamp": now.isoformat().replace("+00:00", "Z"),
            },
        }

    # ---- 消息处理与结果流 ----

    def process_message(self, context: MessageContext) -> Dict[str, Any]:
        return run_pipeline(self._graph, context)

    def stream_results(self, filters: Optional[Mapping[str, Any]] = None) -> Iterator[str]:
        """SSE 事件帧生成器。传输层断开时关闭生成器即可取消订阅。"""

        sink = QueueSink(
            maxsize=self._settings.subscriber_queue_size,
            put_timeout=self._settings.subscriber_put_timeout,
        )
        sub_id = self.broker.subscribe(filters or {}, sink)
        try:
            yield from sink.frames()
        finally:
            self.broker.unsubscribe(sub_id)

    def client_count(self) -> int:
        return self.broker.client_count()


_service: Optional[RelayService] = None


def get_default_service() -> RelayService:
    """获取进程级的默认服务实例（单例），使用 JsonResultStore 持久化结果。"""

    global _service
    if _service is None:
        _service = RelayService(results_repo=JsonResultStore(root=settings.storage_root))
    return _service
