"""Bounded worker pool for the work triggered by each stored message."""

import queue
import threading
import time
from typing import Any, Callable, List, Optional

from replyguard.logging_config import get_logger

logger = get_logger("background")

_STOP = object()


class BackgroundDispatcher:
    """Fixed worker threads over a bounded queue.

    submit() never blocks: a full queue or a stopped dispatcher rejects the job.
    shutdown(drain=True) stops intake, lets workers finish what is queued and joins them.
    """

    def __init__(self, workers: int = 4, queue_size: int = 100):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        self.workers = workers
        self.queue_size = queue_size
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._accepting = False

    @property
    def running(self) -> bool:
        return self._accepting

    def start(self) -> None:
        with self._lock:
            if self._accepting:
                return
            self._accepting = True
            self._threads = [
                threading.Thread(target=self._worker_loop, name=f"replyguard-worker-{i}", daemon=True)
                for i in range(self.workers)
            ]
            for thread in self._threads:
                thread.start()
        logger.info("Background dispatcher started", extra={"context": {"workers": self.workers}})

    def submit(self, name: str, func: Callable[..., Any], *args: Any) -> bool:
        with self._lock:
            if not self._accepting:
                logger.warning("Dispatcher not accepting jobs, dropped", extra={"context": {"job": name}})
                return False
            try:
                self._queue.put_nowait((name, func, args))
            except queue.Full:
                logger.warning(
                    "Background queue full, job dropped",
                    extra={"context": {"job": name, "queue_size": self.queue_size}},
                )
                return False
        return True

    def shutdown(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        with self._lock:
            if not self._accepting:
                return
            self._accepting = False
            threads = list(self._threads)

        if not drain:
            dropped = 0
            while True:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    break
                self._queue.task_done()
                dropped += 1
            if dropped:
                logger.warning("Dropped queued jobs on shutdown", extra={"context": {"dropped": dropped}})

        # Sentinels go behind any queued jobs, so workers drain first.
        for _ in threads:
            self._queue.put(_STOP)
        # timeout bounds the whole shutdown, not each join.
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        alive = sum(1 for thread in threads if thread.is_alive())
        if alive:
            logger.warning("Workers still busy after shutdown timeout", extra={"context": {"alive": alive}})

        self._threads = []
        logger.info("Background dispatcher stopped", extra={"context": {"drained": drain}})

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                name, func, args = item
                try:
                    func(*args)
                except Exception as exc:
                    logger.error(
                        f"Background job failed: {name}",
                        extra={"context": {"job": name, "error": str(exc)}},
                        exc_info=True,
                    )
            finally:
                self._queue.task_done()
