"""Rate-limited task execution."""

from .runner import Clock, SystemClock, TaskRunner

__all__ = ["Clock", "SystemClock", "TaskRunner"]
