"""Rate-limited runner shared by every remote-calling component."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Protocol, TypeVar

from omegacodex.errors import OmegaCodexError, TaskInterruptedError
from omegacodex.metrics.observability import PipelineMetrics, get_logger

T = TypeVar("T")

_INTERRUPTS = (InterruptedError, KeyboardInterrupt)


class Clock(Protocol):
    """Time source used by the runner."""

    def monotonic_ns(self) -> int:
        """Return a monotonic timestamp in nanoseconds."""

    def sleep(self, seconds: float) -> None:
        """Block for ``seconds``; raise ``InterruptedError`` when interrupted."""


class SystemClock:
    """Wall-clock implementation whose sleep can be interrupted cooperatively.

    ``interrupt`` only affects a sleep that is in progress; with no sleeper it
    is a no-op, so a later sleep is never cut short by a stale request.
    """

    def __init__(self) -> None:
        self._interrupted = threading.Event()
        self._lock = threading.Lock()
        self._sleepers = 0

    @property
    def sleeping(self) -> bool:
        return self._sleepers > 0

    def monotonic_ns(self) -> int:
        return time.monotonic_ns()

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self._sleepers += 1
        try:
            interrupted = self._interrupted.wait(seconds)
        finally:
            with self._lock:
                self._sleepers -= 1
                if self._sleepers == 0:
                    self._interrupted.clear()
        if interrupted:
            raise InterruptedError("Sleep interrupted")

    def interrupt(self) -> None:
        with self._lock:
            if self._sleepers:
                self._interrupted.set()


class TaskRunner:
    """Runs named tasks, keeping a minimum delay between consecutive starts.

    One runner is one rate domain: every caller sharing the instance shares
    the delay. Create one runner per remote endpoint to rate limit them
    independently.
    """

    def __init__(
        self,
        rate_limit_delay_ms: int,
        *,
        clock: Clock | None = None,
        logger: Any | None = None,
    ) -> None:
        if rate_limit_delay_ms < 0:
            raise ValueError("Rate limit delay must not be negative.")
        self._delay_ms = rate_limit_delay_ms
        self._clock = clock or SystemClock()
        self._logger = logger or get_logger("tasks")
        self._lock = threading.Lock()
        self._previous_start: int | None = None

    @property
    def rate_limit_delay_ms(self) -> int:
        return self._delay_ms

    def run(self, task_name: str, task: Callable[[], T], start_detail: str | None = None) -> T:
        if task_name is None:
            raise ValueError("Task name must not be None.")
        if not task_name:
            raise ValueError("Task name must not be empty.")
        if task is None:
            raise ValueError("Task must not be None.")

        start = self._acquire_slot(task_name)
        if start_detail:
            self._logger.info("task.start", task=task_name, detail=start_detail)
        else:
            self._logger.info("task.start", task=task_name)

        try:
            result = task()
        except _INTERRUPTS as exc:
            raise TaskInterruptedError(f"{task_name}, Task Interrupted", phase="executing") from exc
        except OmegaCodexError:
            raise
        except Exception as exc:
            raise OmegaCodexError(f"{task_name}, Exception Occurred") from exc

        elapsed_ns = self._clock.monotonic_ns() - start
        PipelineMetrics.observe_task(task_name, elapsed_ns / 1_000_000_000)
        self._logger.info("task.complete", task=task_name, duration_ms=elapsed_ns // 1_000_000)
        return result

    def _acquire_slot(self, task_name: str) -> int:
        with self._lock:
            if self._previous_start is not None:
                elapsed_ms = (self._clock.monotonic_ns() - self._previous_start) // 1_000_000
                delay_ms = self._delay_ms - elapsed_ms
                if delay_ms > 0:
                    self._logger.info("task.sleep", task=task_name, duration_ms=delay_ms)
                    try:
                        self._clock.sleep(delay_ms / 1000)
                    except _INTERRUPTS as exc:
                        raise TaskInterruptedError(f"{task_name}, Sleep Interrupted", phase="sleeping") from exc
                    PipelineMetrics.observe_sleep(delay_ms / 1000)
            start = self._clock.monotonic_ns()
            self._previous_start = start
            return start


__all__ = ["Clock", "SystemClock", "TaskRunner"]
