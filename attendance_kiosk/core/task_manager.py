"""Utilities for tracking and cancelling background asyncio tasks."""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Optional

from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger


@dataclass(slots=True)
class _TaskRecord:
    task: asyncio.Task
    name: str
    created: float


class AsyncTaskManager:
    """Keep track of named background tasks and shut them down safely.

    ``cancel_now`` requests cancellation synchronously (for code paths that
    must not await, such as a terminal state transition); ``cancel`` and
    ``shutdown`` additionally wait for the tasks to finish.
    """

    def __init__(self, name: Optional[str] = None, logger: LoggerLike = None) -> None:
        self._name = name or self.__class__.__name__
        self._logger = ensure_structured_logger(logger, fallback_name=self._name)
        self._closed = False
        self._records: dict[asyncio.Task, _TaskRecord] = {}
        self._name_index: dict[str, set[asyncio.Task]] = defaultdict(set)

    def create(self, coro: Awaitable, *, name: Optional[str] = None) -> asyncio.Task:
        """Create and register a task on the current running loop."""

        if self._closed:
            raise RuntimeError(f"{self._name} is shutting down; no new tasks permitted")

        loop = asyncio.get_running_loop()
        task_name = name or getattr(coro, "__name__", None) or repr(coro)
        task = loop.create_task(coro, name=task_name)
        self._records[task] = _TaskRecord(task=task, name=task_name, created=time.perf_counter())
        self._name_index[task_name].add(task)
        task.add_done_callback(self._finalize)
        return task

    def reopen(self) -> None:
        """Allow new tasks again after :meth:`shutdown`."""
        self._closed = False

    def _finalize(self, task: asyncio.Task) -> None:
        rec = self._records.pop(task, None)
        if rec:
            self._name_index[rec.name].discard(task)
            if not self._name_index[rec.name]:
                self._name_index.pop(rec.name, None)
        status = self._log_task_result(task, context=rec.name if rec else None)
        elapsed_ms = (time.perf_counter() - rec.created) * 1000 if rec else 0.0
        self._logger.debug(
            "%s task %s finished (%s) in %.1fms",
            self._name,
            rec.name if rec else task.get_name(),
            status,
            elapsed_ms,
        )

    # ------------------------------------------------------------------
    # cancellation

    def cancel_now(self, name: str) -> int:
        """Request cancellation of every task registered under ``name``.

        The calling task is never cancelled. Returns the number of tasks
        that were asked to cancel.
        """
        current = asyncio.current_task() if _loop_running() else None
        count = 0
        for task in list(self._name_index.get(name, ())):
            if task is current or task.done():
                continue
            task.cancel()
            count += 1
        return count

    async def shutdown(self, *, timeout: float = 5.0) -> bool:
        """Cancel outstanding tasks and wait for their completion."""

        self._closed = True
        pending = [task for task in self._records if not task.done()]
        if not pending:
            return True
        return await self._cancel_and_wait(pending, timeout=timeout, reason="shutdown")

    async def _cancel_and_wait(self, tasks: Iterable[asyncio.Task], *, timeout: float, reason: str) -> bool:
        current = asyncio.current_task()
        pending = [task for task in tasks if not task.done() and task is not current]
        for task in pending:
            task.cancel()

        if not pending:
            return True

        try:
            await asyncio.wait_for(asyncio.gather(*pending, return_exceptions=True), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            hanging = [self._records[t].name for t in pending if not t.done() and t in self._records]
            self._logger.warning(
                "%s %s timed out after %.1fs; %d task(s) still pending: %s",
                self._name,
                reason,
                timeout,
                len(hanging),
                ", ".join(hanging),
            )
            return False

    # ------------------------------------------------------------------
    # inspection

    def active_count(self) -> int:
        return sum(1 for task in self._records if not task.done())

    def active_names(self) -> list[str]:
        return [rec.name for rec in self._records.values() if not rec.task.done()]

    def _log_task_result(self, task: asyncio.Task, *, context: Optional[str]) -> str:
        if task.cancelled():
            return "cancelled"

        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "%s task %s failed: %s",
                self._name,
                context or task.get_name(),
                exc,
                exc_info=exc,
            )
            return f"error:{exc.__class__.__name__}"

        return "completed"


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


__all__ = ["AsyncTaskManager"]
