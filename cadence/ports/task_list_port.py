"""Task list port — receives tasks materialized from recurring patterns."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from cadence.data.models import GeneratedTask


class TaskListPort(Protocol):
    """The task list collaborator."""

    def add_tasks(self, tasks: list[GeneratedTask]) -> None: ...
