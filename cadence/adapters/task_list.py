"""In-memory task list — implements TaskListPort.

Holds generated tasks and reports completions back to the scheduling
service, which creates the next instance of the task's pattern.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from cadence.data.models import GeneratedTask

logger = logging.getLogger(__name__)


class InMemoryTaskList:
    """Minimal task list collaborator."""

    def __init__(
        self,
        on_completed: Callable[[GeneratedTask], GeneratedTask | None] | None = None,
    ) -> None:
        self._tasks: dict[str, GeneratedTask] = {}
        self._on_completed = on_completed

    def add_tasks(self, tasks: list[GeneratedTask]) -> None:
        for task in tasks:
            self._tasks[task.id] = task
            logger.info("Task added: %s '%s' due %s", task.id, task.text, task.due_date.isoformat())

    def complete(self, task_id: str) -> GeneratedTask | None:
        """Mark a task done. Returns the next generated instance, if any."""
        task = self._tasks.get(task_id)
        if task is None or task.completed:
            return None
        task.completed = True
        logger.info("Task completed: %s '%s'", task_id, task.text)

        if self._on_completed is None:
            return None
        next_task = self._on_completed(replace(task))
        if next_task is not None:
            self.add_tasks([next_task])
        return next_task

    def get(self, task_id: str) -> GeneratedTask | None:
        task = self._tasks.get(task_id)
        return replace(task) if task is not None else None

    def list_open(self) -> list[GeneratedTask]:
        open_tasks = [replace(t) for t in self._tasks.values() if not t.completed]
        open_tasks.sort(key=lambda t: (t.due_date, t.due_time or ""))
        return open_tasks
