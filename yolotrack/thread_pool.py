"""A fixed-size pool of worker threads fed from a FIFO task queue."""

from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable

from .board import DEFAULT_BOARD_NAME_PATH, enforce_authorization


class ThreadPool:
    """Runs submitted callables on ``thread_count`` worker threads.

    The pool only starts on a supported board; otherwise
    :class:`~yolotrack.board.AuthorizationError` is raised.
    """

    def __init__(
        self,
        thread_count: int,
        board_path: str | Path = DEFAULT_BOARD_NAME_PATH,
    ) -> None:
        enforce_authorization(board_path)
        self._tasks: deque[tuple[Future, Callable[..., Any], tuple, dict]] = deque()
        self._cond = threading.Condition()
        self._running = True
        self._active = 0
        self._threads = [
            threading.Thread(target=self._worker, daemon=True)
            for _ in range(thread_count)
        ]
        for thread in self._threads:
            thread.start()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def put(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue ``fn(*args, **kwargs)`` and return a future for its result."""
        future: Future = Future()
        with self._cond:
            if not self._running:
                raise RuntimeError("thread pool has been shut down")
            self._tasks.append((future, fn, args, kwargs))
            self._cond.notify_all()
        return future

    def get(self, future: Future) -> Any:
        """Block until ``future`` completes and return its result."""
        return future.result()

    def wait(self) -> None:
        """Block until the queue is empty and no task is running."""
        with self._cond:
            self._cond.wait_for(lambda: not self._tasks and self._active == 0)

    def thread_count(self) -> int:
        """Return the number of worker threads."""
        return len(self._threads)

    def shutdown(self) -> None:
        """Stop the workers; tasks still queued are cancelled."""
        with self._cond:
            self._running = False
            self._cond.notify_all()
        for thread in self._threads:
            if thread.is_alive() and thread is not threading.current_thread():
                thread.join()
        with self._cond:
            leftovers = list(self._tasks)
            self._tasks.clear()
            self._cond.notify_all()
        for future, *_ in leftovers:
            future.cancel()

    def _worker(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: not self._running or bool(self._tasks))
                if not self._running:
                    return
                future, fn, args, kwargs = self._tasks.popleft()
                self._active += 1
            try:
                if future.set_running_or_notify_cancel():
                    try:
                        result = fn(*args, **kwargs)
                    except BaseException as exc:  # stored for the caller
                        future.set_exception(exc)
                    else:
                        future.set_result(result)
            finally:
                with self._cond:
                    self._active -= 1
                    self._cond.notify_all()