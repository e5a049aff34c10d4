"""进程内的结果广播中心。

- subscribe: 注册订阅，connected 事件总是该订阅收到的第一帧。
- publish: 把事件放入所有过滤条件匹配的活动订阅的队列；某个订阅失败只会关闭它自己。
- heartbeat: 由 Broker 自己的定时器每 30 秒调用，向所有活动订阅发送 ping。
- unsubscribe: 显式移除，可重复调用。

每个订阅都有 Broker 持有的有界队列和一个排空线程，只有排空线程会调用 sink.send。
publish 只做不阻塞的入队，卡住的订阅者最多填满自己的队列，随后因溢出被关闭，
不会拖慢发布方或其他订阅者。订阅集合由 _lock 保护，入队在锁外进行。
"""

import queue
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

from relay_core.broker.events import (
    BroadcastEvent,
    ConnectedEvent,
    HeartbeatEvent,
    ResultEvent,
    SubscriptionFilter,
    encode_sse,
)
from relay_core.broker.periodic import PeriodicTask
from relay_core.broker.sinks import DeliverySink
from relay_core.domain.exceptions import DeliveryError
from relay_core.infrastructure.logging.logger import logger

Clock = Callable[[], float]

_STOP = object()


class Subscription:
    """单个订阅。状态只能从 active 变为 closed，不会恢复。

    last_delivery 是最近一次 sink.send 成功的时间，由排空线程更新。
    """

    def __init__(
        self,
        sub_id: str,
        filters: SubscriptionFilter,
        sink: DeliverySink,
        clock: Clock,
        maxsize: int = 100,
        on_failure: Optional[Callable[["Subscription", Exception], None]] = None,
    ):
        self.id = sub_id
        self.filters = filters
        self.sink = sink
        self.closed = False
        self._clock = clock
        self.last_delivery = clock()
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._on_failure = on_failure
        self._thread = threading.Thread(target=self._drain, name=f"broker-{sub_id}", daemon=True)

    def wants(self, event: BroadcastEvent) -> bool:
        if isinstance(event, ResultEvent):
            return self.filters.matches(event.match_keys)
        return True

    def offer(self, frame: str) -> None:
        """不阻塞地入队；已关闭或队列已满时抛 DeliveryError。"""

        if self.closed:
            raise DeliveryError(code="SUBSCRIPTION_CLOSED", message=f"Subscription {self.id} is closed")
        try:
            self._queue.put_nowait(frame)
        except queue.Full:
            raise DeliveryError(code="SUBSCRIBER_OVERFLOW", message=f"Subscription {self.id} queue is full")

    def start(self) -> None:
        self._thread.start()

    def _drain(self) -> None:
        while True:
            try:
                frame = self._queue.get(timeout=1.0)
            except queue.Empty:
                if self.closed:
                    break
                continue
            if frame is _STOP or self.closed:
                self._queue.task_done()
                break
            try:
                self.sink.send(frame)
                self.last_delivery = self._clock()
            except Exception as exc:  # noqa: BLE001 - 任何 sink 异常都视为投递失败
                self.closed = True
                if self._on_failure is not None:
                    self._on_failure(self, exc)
            finally:
                self._queue.task_done()
        # 关闭后丢弃剩余帧，保证 flush() 能返回
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            self._queue.task_done()

    def flush(self, timeout: float = 1.0) -> bool:
        """等待已入队的帧全部交给 sink（或被丢弃），超时返回 False。"""

        deadline = time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self) -> None:
        # 先放入停止标记再置 closed，排空线程总能在退出前把队列清空
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            pass
        self.closed = True
        close = getattr(self.sink, "close", None)
        if callable(close):
            try:
                close()
            except Exception as exc:  # noqa: BLE001 - 通知传输层失败不影响移除
                logger.warning(
                    "broker.sink_close_failed",
                    extra={"extra": {"client_id": self.id, "error": str(exc)}},
                )


class ResultBroker:
    """发布/订阅中心。

    Args:
        heartbeat_interval: 心跳间隔（秒），start() 后生效。
        clock: 单调时钟，测试时可替换。
        queue_size: 每个订阅的缓冲帧数，超出即关闭该订阅。
    """

    def __init__(self, heartbeat_interval: float = 30.0, clock: Clock = time.monotonic, queue_size: int = 100):
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._queue_size = queue_size
        self._heartbeat_task = PeriodicTask("result-broker-heartbeat", heartbeat_interval, self.heartbeat)

    @property
    def clock(self) -> Clock:
        return self._clock

    # ---- 订阅 ----

    def subscribe(
        self,
        filters: Union[SubscriptionFilter, Mapping[str, Any], None],
        sink: DeliverySink,
    ) -> str:
        if not isinstance(filters, SubscriptionFilter):
            filters = SubscriptionFilter.from_mapping(filters or {})
        sub_id = f"llm_stream_{int(time.time() * 1000)}_{uuid4().hex[:9]}"
        subscription = Subscription(
            sub_id,
            filters,
            sink,
            self._clock,
            maxsize=self._queue_size,
            on_failure=self._on_sink_failure,
        )
        # connected 先入队再注册，之后的发布只能排在它后面
        subscription.offer(encode_sse(ConnectedEvent(client_id=sub_id, filters=filters)))
        subscription.start()
        with self._lock:
            self._subscriptions[sub_id] = subscription
        logger.info(
            "broker.client_connected",
            extra={"extra": {"client_id": sub_id, "filters": filters.to_dict()}},
        )
        return sub_id

    def unsubscribe(self, sub_id: str) -> bool:
        return bool(self._remove([sub_id], reason="unsubscribed"))

    # ---- 发布 ----

    def publish(self, event: BroadcastEvent) -> int:
        """入队事件，返回成功入队的订阅数。不会向发布方抛出投递错误。"""

        with self._lock:
            targets = [s for s in self._subscriptions.values() if not s.closed and s.wants(event)]
        return self._deliver(targets, event)

    def publish_result(self, payload: Dict[str, Any]) -> int:
        return self.publish(ResultEvent(payload=payload))

    def heartbeat(self) -> int:
        return self.publish(HeartbeatEvent())

    def _deliver(self, targets: Iterable[Subscription], event: BroadcastEvent) -> int:
        targets = list(targets)
        if not targets:
            return 0
        frame = encode_sse(event)
        delivered = 0
        failed: List[str] = []
        for subscription in targets:
            try:
                subscription.offer(frame)
                delivered += 1
            except DeliveryError as exc:
                failed.append(subscription.id)
                logger.warning(
                    "broker.delivery_failed",
                    extra={"extra": {"client_id": subscription.id, "code": exc.code, "error": exc.message}},
                )
        if failed:
            self._remove(failed, reason="delivery_failed")
        return delivered

    def _on_sink_failure(self, subscription: Subscription, exc: Exception) -> None:
        logger.warning(
            "broker.delivery_failed",
            extra={"extra": {"client_id": subscription.id, "code": "SINK_ERROR", "error": str(exc) or type(exc).__name__}},
        )
        self._remove([subscription.id], reason="delivery_failed")

    # ---- 维护 ----

    def evict(self, predicate: Callable[[Subscription], bool], reason: str) -> List[str]:
        """移除所有满足 predicate 的订阅，返回被移除的 ID。"""

        with self._lock:
            ids = [sid for sid, s in self._subscriptions.items() if predicate(s)]
        return self._remove(ids, reason=reason)

    def _remove(self, ids: Iterable[str], reason: str) -> List[str]:
        with self._lock:
            removed = [self._subscriptions.pop(sid) for sid in ids if sid in self._subscriptions]
        for subscription in removed:
            subscription.close()
        if removed:
            logger.info(
                "broker.client_removed",
                extra={"extra": {"client_ids": [s.id for s in removed], "reason": reason}},
            )
        return [s.id for s in removed]

    def flush(self, timeout: float = 1.0) -> bool:
        """等待所有订阅的队列排空，主要用于测试与优雅停机。"""

        with self._lock:
            subscriptions = list(self._subscriptions.values())
        return all([s.flush(timeout) for s in subscriptions])

    def get_subscription(self, sub_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(sub_id)

    def client_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def start(self) -> None:
        self._heartbeat_task.start()

    def stop(self) -> None:
        self._heartbeat_task.stop()
