"""订阅者投递通道。

Broker 的每订阅排空线程通过 send(frame) 往通道里写。QueueSink 供生成器式的传输层使用：
传输层在自己的线程里从 QueueSink.frames() 取出事件写入网络连接。
"""

import queue
import threading
from typing import Iterator, Protocol

from relay_core.domain.exceptions import DeliveryError


class DeliverySink(Protocol):
    """投递通道协议。send 失败时应抛异常，Broker 会据此关闭该订阅。

    可选的 close() 会在订阅被移除时调用，用于通知传输层结束。
    """

    def send(self, frame: str) -> None:
        ...


class QueueSink:
    """有界队列通道：写入最多等待 put_timeout 秒，队列满或已关闭时抛 DeliveryError。"""

    def __init__(self, maxsize: int = 100, put_timeout: float = 0.5):
        self._queue: "queue.Queue[str]" = queue.Queue(maxsize=maxsize)
        self._put_timeout = put_timeout
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, frame: str) -> None:
        if self._closed.is_set():
            raise DeliveryError(code="SINK_CLOSED", message="Subscriber stream is closed")
        try:
            self._queue.put(frame, timeout=self._put_timeout)
        except queue.Full:
            raise DeliveryError(code="SINK_FULL", message="Subscriber queue is full")

    def close(self) -> None:
        self._closed.set()

    def frames(self, poll_interval: float = 1.0) -> Iterator[str]:
        """按写入顺序产出事件帧；关闭且队列清空后结束。"""

        while True:
            try:
                frame = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                if self._closed.is_set():
                    return
                continue
            yield frame
