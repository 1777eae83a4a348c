"""Frame-rate counting, serialised console output and timing helpers."""

from __future__ import annotations

import threading
import time
from typing import Callable

_print_lock = threading.Lock()


class FPSCounter:
    """Counts processed frames and reports the rate once per second.

    ``clock`` returns the current time in seconds; it defaults to a
    monotonic clock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._frame_count = 0
        self._start = clock()
        self._current_fps = 0.0

    def increment_frame(self) -> None:
        """Record one processed frame. Safe to call from any thread."""
        with self._lock:
            self._frame_count += 1

    def get_current_fps(self) -> float:
        """Return the current rate, recomputed when a second has passed."""
        now = self._clock()
        with self._lock:
            elapsed = now - self._start
            if elapsed >= 1.0:
                self._current_fps = self._frame_count / elapsed
                self._frame_count = 0
                self._start = self._clock()
            return self._current_fps


def safe_print(fmt: str, *args: object) -> None:
    """Print a printf-style message as one line, serialised across threads."""
    message = fmt % args if args else fmt
    with _print_lock:
        print(message, flush=True)


def get_current_ms() -> float:
    """Return the wall-clock time in whole milliseconds since the epoch."""
    return float(time.time_ns() // 1_000_000)


def print_time_cost(step_name: str, start_ms: float, end_ms: float) -> None:
    """Print how long a named step took, in milliseconds."""
    safe_print("[timing] %s: %.2f ms", step_name, end_ms - start_ms)