from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional


logger = logging.getLogger("deed.debounce")


class DebouncedTrigger:
    """Coalesce a burst of events and run the action once after a quiet period.

    Each ``trigger`` cancels the pending call and reschedules it
    ``interval_s`` after itself, so the action sees the last call's arguments.
    Coroutine results are scheduled as tasks on the running loop.
    """

    def __init__(self, action: Callable[..., Any], interval_s: float = 0.15):
        self.action = action
        self.interval_s = interval_s
        self.fired = 0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, *args: Any, **kwargs: Any) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.interval_s, self._fire, args, kwargs)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, args: tuple, kwargs: dict) -> None:
        self._handle = None
        self.fired += 1
        try:
            result = self.action(*args, **kwargs)
        except Exception:
            logger.exception("debounced action failed")
            return
        if inspect.isawaitable(result):
            self._task = asyncio.ensure_future(result)
            self._task.add_done_callback(_log_task_failure)

    async def flush(self) -> Any:
        """Await the most recently started action task, if any."""

        task, self._task = self._task, None
        if task is None:
            return None
        return await task


def _log_task_failure(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("debounced action failed: %s", exc)
