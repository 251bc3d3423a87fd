import time
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class RequestThrottle:
    """FIFO request queue that keeps outbound vendor calls under a per-minute cap.

    Every queued operation performs exactly one HTTP call. A single worker
    thread dispatches operations in enqueue order, waiting whenever the
    trailing window is full or the minimum spacing since the previous
    dispatch has not elapsed. The worker exits when the queue drains and is
    restarted by the next submit.
    """

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0,
                 min_interval_seconds: float = 6.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._sleep = sleep

        self._pending: Deque[Tuple[Callable[[], Any], Future]] = deque()
        self._dispatch_times: Deque[float] = deque()
        self._last_dispatch: Optional[float] = None
        self._worker: Optional[threading.Thread] = None
        self.lock = threading.Lock()

    def submit(self, operation: Callable[[], Any]) -> Future:
        """Queue an operation and return a future for its result."""
        future: Future = Future()
        with self.lock:
            self._pending.append((operation, future))
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._drain, name="request-throttle", daemon=True
                )
                self._worker.start()
        return future

    def enqueue(self, operation: Callable[[], Any]) -> Any:
        """Queue an operation and block until it has run. Re-raises its exception."""
        return self.submit(operation).result()

    def _drain(self):
        while True:
            with self.lock:
                if not self._pending:
                    self._worker = None
                    return
                operation, future = self._pending.popleft()

            self._wait_for_slot()

            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = operation()
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

    def _wait_for_slot(self):
        """Sleep until a dispatch is allowed, then record it."""
        while True:
            with self.lock:
                now = self._clock()
                self._prune(now)

                wait_time = 0.0
                if len(self._dispatch_times) >= self.max_requests:
                    oldest_request = self._dispatch_times[0]
                    wait_time = self.window_seconds - (now - oldest_request)
                if self._last_dispatch is not None:
                    wait_time = max(wait_time, self.min_interval_seconds - (now - self._last_dispatch))

                if wait_time <= 0:
                    self._dispatch_times.append(now)
                    self._last_dispatch = now
                    return

            if wait_time > self.min_interval_seconds:
                logger.info(f"Rate limit reached, waiting {wait_time:.2f} seconds")
            else:
                logger.debug(f"Spacing requests, waiting {wait_time:.2f} seconds")
            self._sleep(wait_time)

    def _prune(self, now: float):
        # Clean old requests (older than the window)
        while self._dispatch_times and now - self._dispatch_times[0] >= self.window_seconds:
            self._dispatch_times.popleft()

    def get_status(self) -> Dict:
        """Get current throttling status."""
        with self.lock:
            self._prune(self._clock())
            current_requests = len(self._dispatch_times)
            return {
                'queue_length': len(self._pending),
                'rate_limit': self.max_requests,
                'current_requests': current_requests,
                'remaining_requests': max(0, self.max_requests - current_requests),
                'worker_active': self._worker is not None,
            }
