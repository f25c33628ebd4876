"""
Cadence — Scheduler loops.

Two interval jobs on an APScheduler ``AsyncIOScheduler`` bound to the running
asyncio event loop:

Reminder loop (default every 30 s): fire due reminders through the
notification dispatcher, then purge old triggered reminders.

Pattern loop (default every hour): materialize due recurring patterns and
hand the generated tasks to the task list.

All store mutation happens synchronously inside one tick, and each job runs
with ``max_instances=1``, so ticks never interleave. Dispatches run as
separate tasks; stopping the scheduler only prevents future ticks and leaves
queued dispatches alone.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from cadence.core.dispatcher import NotificationDispatcher
    from cadence.core.events import SchedulingService
    from cadence.data.models import GeneratedTask, Reminder
    from cadence.ports.task_list_port import TaskListPort

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_INTERVAL = 30.0
DEFAULT_PATTERN_INTERVAL = 3600.0

REMINDER_JOB_ID = "reminder-loop"
PATTERN_JOB_ID = "pattern-loop"


class Scheduler:
    """Owns the reminder and pattern poll loops."""

    def __init__(
        self,
        service: SchedulingService,
        dispatcher: NotificationDispatcher,
        task_list: TaskListPort | None = None,
        reminder_interval: float = DEFAULT_REMINDER_INTERVAL,
        pattern_interval: float = DEFAULT_PATTERN_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        for name, interval in ((REMINDER_JOB_ID, reminder_interval), (PATTERN_JOB_ID, pattern_interval)):
            if interval <= 0:
                raise ValueError(f"{name}: interval must be positive, got {interval}")

        self._service = service
        self._dispatcher = dispatcher
        self._task_list = task_list
        self._clock = clock
        self.reminder_interval = reminder_interval
        self.pattern_interval = pattern_interval
        self._scheduler: AsyncIOScheduler | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start both loops; each ticks once immediately. Needs a running event loop."""
        if self.is_running:
            return

        scheduler = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(),
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
        )
        scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)

        now = datetime.now()
        scheduler.add_job(
            self.check_reminders_now,
            "interval",
            seconds=self.reminder_interval,
            id=REMINDER_JOB_ID,
            next_run_time=now,
        )
        scheduler.add_job(
            self.check_patterns_now,
            "interval",
            seconds=self.pattern_interval,
            id=PATTERN_JOB_ID,
            next_run_time=now,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Scheduler started (reminders every %.0fs, patterns every %.0fs)",
            self.reminder_interval, self.pattern_interval,
        )

    def stop(self) -> None:
        """Cancel future ticks. Safe to call when not running."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    def _job_error(self, event: JobExecutionEvent) -> None:
        logger.error("%s tick failed: %r", event.job_id, event.exception)

    def _spawn_dispatch(self, reminder: Reminder) -> None:
        task = asyncio.get_running_loop().create_task(self._dispatcher.dispatch(reminder))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def check_reminders_now(self) -> list[Reminder]:
        """One reminder tick: fire due reminders, then purge old ones."""
        now = self._clock()
        due = self._service.poll_due(now)
        for reminder in due:
            self._spawn_dispatch(reminder)
        self._service.purge_old(now)
        logger.debug("Reminder tick at %s: %d fired", now.isoformat(), len(due))
        return due

    async def check_patterns_now(self) -> list[GeneratedTask]:
        """One pattern tick: materialize due patterns into the task list."""
        now = self._clock()
        tasks = self._service.materialize_due(now)
        if tasks and self._task_list is not None:
            try:
                self._task_list.add_tasks(tasks)
            except Exception:
                logger.exception("Task list rejected %d generated tasks", len(tasks))
        logger.debug("Pattern tick at %s: %d materialized", now.isoformat(), len(tasks))
        return tasks

    async def drain(self) -> None:
        """Wait for dispatches already queued."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
