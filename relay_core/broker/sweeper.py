"""失活订阅清理。

有些传输层在网络异常断开时不会通知关闭，订阅会一直留在 Broker 里。
LivenessSweeper 每隔 interval 秒移除已关闭、或超过 timeout 秒没有成功投递的订阅。
清理只在 Broker 的锁内做集合操作，不会阻塞 publish/subscribe。
"""

from typing import List

from relay_core.broker.periodic import PeriodicTask
from relay_core.broker.result_broker import ResultBroker, Subscription
from relay_core.infrastructure.logging.logger import logger


class LivenessSweeper:
    def __init__(self, broker: ResultBroker, interval: float = 30.0, timeout: float = 120.0):
        self._broker = broker
        self.timeout = timeout
        self._task = PeriodicTask("result-broker-sweeper", interval, self.sweep)

    def sweep(self) -> List[str]:
        now = self._broker.clock()

        def is_dead(subscription: Subscription) -> bool:
            return subscription.closed or (now - subscription.last_delivery) > self.timeout

        removed = self._broker.evict(is_dead, reason="stale")
        if removed:
            logger.info("broker.clients_swept", extra={"extra": {"count": len(removed)}})
        return removed

    def start(self) -> None:
        self._task.start()

    def stop(self) -> None:
        self._task.stop()
