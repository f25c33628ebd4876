"""
Cadence — Entry Point.

`python main.py` loads state, starts the reminder and pattern loops and runs
until interrupted.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from cadence.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from cadence.adapters.event_bus import InMemoryEventBus
from cadence.adapters.task_list import InMemoryTaskList
from cadence.core.dispatcher import NotificationDispatcher
from cadence.core.events import REMINDER_FALLBACK, SchedulingService
from cadence.core.patterns import PatternStore
from cadence.core.reminders import ReminderStore
from cadence.core.scheduler import Scheduler
from cadence.data.store import StateStore

logger = logging.getLogger("cadence")


def _log_fallback(topic: str, reminder: object) -> None:
    logger.info("Reminder: %s", getattr(reminder, "text", reminder))


async def run() -> None:
    store = StateStore(settings.DATABASE_PATH)
    bus = InMemoryEventBus()
    bus.subscribe(REMINDER_FALLBACK, _log_fallback)

    service = SchedulingService(
        PatternStore(store),
        ReminderStore(store, retention_days=settings.REMINDER_RETENTION_DAYS),
        bus,
    )
    task_list = InMemoryTaskList(on_completed=service.on_subject_completed)

    bot = None
    notifier = None
    if settings.telegram_enabled:
        from telegram import Bot

        from cadence.adapters.telegram_notifier import TelegramNotifier

        bot = Bot(settings.TELEGRAM_BOT_TOKEN)
        await bot.initialize()
        notifier = TelegramNotifier(bot, settings.TELEGRAM_CHAT_IDS)

    dispatcher = NotificationDispatcher(bus, notifier, title=settings.NOTIFICATION_TITLE)
    await dispatcher.request_permission()

    scheduler = Scheduler(
        service,
        dispatcher,
        task_list,
        reminder_interval=settings.REMINDER_POLL_SECONDS,
        pattern_interval=settings.PATTERN_POLL_SECONDS,
    )

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows

    logger.info("Starting Cadence scheduler...")
    scheduler.start()
    try:
        await stop.wait()
    finally:
        scheduler.stop()
        await scheduler.drain()
        if bot is not None:
            await bot.shutdown()
        logger.info("Cadence scheduler stopped")


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
