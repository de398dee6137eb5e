"""
Cancelable delayed tasks keyed by call id.

The bridge defers several actions (the reconnection-window check, the deferred
hang-up and its fallback). Scheduling a task under a key that already has one
pending replaces it, so a later decision always supersedes an earlier one.
Callbacks are expected to re-check call state when they fire.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Tuple

from call_agent.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

TaskKey = Tuple[str, str]
Callback = Callable[[], Awaitable[None]]


class TaskScheduler:
    def __init__(self):
        self.tasks: Dict[TaskKey, asyncio.Task] = {}

    def schedule(self, key: TaskKey, delay: float, callback: Callback) -> asyncio.Task:
        """
        Run ``callback`` after ``delay`` seconds, replacing any task under ``key``.

        Args:
            key: ``(call_id, kind)`` identifying the task
            delay: Seconds to wait before running the callback
            callback: Coroutine function invoked with no arguments

        Returns:
            The asyncio task driving the delayed call
        """
        self.cancel(key)
        task = asyncio.create_task(self._run(key, delay, callback))
        self.tasks[key] = task
        return task

    async def _run(self, key: TaskKey, delay: float, callback: Callback) -> None:
        try:
            await asyncio.sleep(delay)
            # Drop our entry before the callback so it can reschedule the same key
            if self.tasks.get(key) is asyncio.current_task():
                del self.tasks[key]
            await callback()
        except asyncio.CancelledError:
            logger.debug(f"Scheduled task {key[1]} cancelled for call: {key[0]}")
            raise
        except Exception as e:
            logger.error(f"Scheduled task {key[1]} failed for call {key[0]}: {e}", exc_info=True)
        finally:
            if self.tasks.get(key) is asyncio.current_task():
                del self.tasks[key]

    def cancel(self, key: TaskKey) -> bool:
        task = self.tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_call(self, call_id: str) -> None:
        """Cancel every pending task for a call."""
        for key in [key for key in self.tasks if key[0] == call_id]:
            self.cancel(key)

    def is_pending(self, key: TaskKey) -> bool:
        task = self.tasks.get(key)
        return task is not None and not task.done()

    async def close(self) -> None:
        tasks = list(self.tasks.values())
        self.tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
