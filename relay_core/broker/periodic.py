"""后台周期任务（心跳、失活清理）。"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from relay_core.infrastructure.logging.logger import logger


class PeriodicTask:
    """在守护线程中每隔 interval 秒调用一次 func，stop() 后退出。"""

    def __init__(self, name: str, interval: float, func: Callable[[], object]):
        self.name = name
        self.interval = interval
        self._func = func
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self._func()
            except Exception:  # noqa: BLE001 - 单次失败不能终止后台任务
                logger.exception("periodic.task_failed", extra={"extra": {"task": self.name}})
